from app.models.rule import Rule
from app.models.merchant_settings import EntityBatchState, MerchantSettings
from app.models.tag_activity import TagActivity, TagUsage
