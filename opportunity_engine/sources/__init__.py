from .base import BaseSource, OpportunitySource
from .digital_products import DigitalProductSource
from .marketplace import MarketplaceSource
from .newsletter import NewsletterSource

# Map source_type strings to classes
SOURCE_REGISTRY: dict[str, type[BaseSource]] = {
    "marketplace": MarketplaceSource,
    "digital_products": DigitalProductSource,
    "newsletter": NewsletterSource,
}

__all__ = [
    "BaseSource",
    "OpportunitySource",
    "MarketplaceSource",
    "DigitalProductSource",
    "NewsletterSource",
    "SOURCE_REGISTRY",
]
