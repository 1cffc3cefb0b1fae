from schedule_scrapers.strategies.base import ExtractionStrategy
from schedule_scrapers.strategies.browser_strategy import AuthenticatedBrowserStrategy, DirectPhotoStrategy
from schedule_scrapers.strategies.coordinator import CoordinatorOutcome, StrategyCoordinator, load_strategy_order
from schedule_scrapers.strategies.graph_api import GraphApiStrategy
from schedule_scrapers.strategies.meta_tags import PublicMetaTagStrategy

__all__ = [
    "AuthenticatedBrowserStrategy",
    "CoordinatorOutcome",
    "DirectPhotoStrategy",
    "ExtractionStrategy",
    "GraphApiStrategy",
    "PublicMetaTagStrategy",
    "StrategyCoordinator",
    "load_strategy_order",
]
