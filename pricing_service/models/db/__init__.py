from .users import User
from .products import Product, ProductVariant
from .pricing_inputs import MetalPurity, StonePrice, MakingCharge, OtherCharge, MrpMarkup, PricingRule
from .price_recalculation_jobs import PriceRecalculationJob
from .enums import JobStatus, TriggerSource, ProductStatus, ProductType, UserRole

__all__ = [
    "User",
    "Product",
    "ProductVariant",
    "MetalPurity",
    "StonePrice",
    "MakingCharge",
    "OtherCharge",
    "MrpMarkup",
    "PricingRule",
    "PriceRecalculationJob",
    "JobStatus",
    "TriggerSource",
    "ProductStatus",
    "ProductType",
    "UserRole",
]
