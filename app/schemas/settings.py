from pydantic import BaseModel

from app.schemas.progress import PastDataProgress


class MerchantSettingsOut(BaseModel):
    shop: str
    past_data_opt_in: bool
    past_data_processing: bool
    past_data_progress: PastDataProgress


class PastDataOptInIn(BaseModel):
    enabled: bool
