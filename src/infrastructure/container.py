"""
DI (Dependency Injection) Container

Builds and owns every long-lived component of the planner. One container is
created per process (by the app factory or a script) and passed along; there
are no module-level service singletons.

Usage:
    from src.infrastructure.container import Container

    container = Container(AppConfig.from_env())

    # cached components
    optimizer = container.get_portfolio_optimizer()
    controller = container.get_pipeline_controller()

    # inject a fake in tests
    container.override("reasoning_client", fake_client)

    # drop everything
    await container.aclose()
    container.reset()
"""

from contextlib import contextmanager
from typing import Any, Callable, Optional

from src.application.workflows.expansion_workflow import ExpansionWorkflow
from src.application.workflows.fallback_generator import FallbackCandidateGenerator
from src.application.workflows.simple_expansion import SimpleExpansionService
from src.core.resilient_client import ResilientClient
from src.domain.interfaces.cache_store import CacheStoreProtocol
from src.domain.interfaces.geocoder import GeocoderProtocol
from src.infrastructure.config.config_manager import AppConfig
from src.infrastructure.feature_flags import FeatureFlags
from src.infrastructure.persistence.cache_store import InMemoryCacheStore, SQLiteCacheStore
from src.monitoring.logger import AgentLogger
from src.pipeline.controller import PipelineController
from src.pipeline.demographics import DemographicIndicatorCache
from src.pipeline.location_discovery import LocationDiscoveryService
from src.pipeline.market_analysis import MarketAnalysisService
from src.pipeline.strategic_scoring import StrategicScoringService
from src.pipeline.viability import ViabilityValidationService
from src.pipeline.zone_identification import ZoneIdentificationService
from src.planning.portfolio_optimizer import PortfolioOptimizer
from src.planning.scenario_modeling import ScenarioModelingService
from src.shared.llm_client import ReasoningClient
from src.shared.model_registry import ModelRegistry, OperationType
from src.tools.geocoding import GeocodingClient


class Container:
    """
    Dependency Injection Container for the expansion planner

    Cached components (one per container):
    - FeatureFlags, ModelRegistry, cache store
    - one ResilientClient per dependency: reasoning, market_data, geocoding
    - ReasoningClient (general) and market ReasoningClient (market_data limiter)
    - pipeline stages + PipelineController
    - PortfolioOptimizer, ScenarioModelingService
    - GeocodingClient, SimpleExpansionService, ExpansionWorkflow
    """

    def __init__(self, config: Optional[AppConfig] = None, flags: Optional[FeatureFlags] = None):
        self.config = config or AppConfig()
        self._instances: dict[str, Any] = {}
        self._overrides: dict[str, Any] = {}
        if flags is not None:
            self._instances["feature_flags"] = flags

    def _get(self, name: str, factory: Callable[[], Any]) -> Any:
        if name in self._overrides:
            return self._overrides[name]
        if name not in self._instances:
            self._instances[name] = factory()
        return self._instances[name]

    # ========================================
    # Configuration
    # ========================================

    def get_feature_flags(self) -> FeatureFlags:
        return self._get("feature_flags", lambda: FeatureFlags(self.config.feature_flags_path))

    def get_model_registry(self) -> ModelRegistry:
        return self._get(
            "model_registry",
            lambda: ModelRegistry(
                timeouts={
                    OperationType.MARKET_ANALYSIS: self.config.market_analysis_timeout,
                    OperationType.ZONE_IDENTIFICATION: self.config.market_analysis_timeout,
                }
            ),
        )

    def get_cache_store(self) -> CacheStoreProtocol:
        def _build() -> CacheStoreProtocol:
            if self.config.cache_backend == "memory":
                return InMemoryCacheStore()
            return SQLiteCacheStore(self.config.cache_db_path)

        return self._get("cache_store", _build)

    # ========================================
    # Resilience (one client per external dependency)
    # ========================================

    def get_resilient_client(self, dependency: str) -> ResilientClient:
        """
        Args:
            dependency: "reasoning", "market_data" or "geocoding"
        """
        configs = {
            "reasoning": self.config.reasoning,
            "market_data": self.config.market_data,
            "geocoding": self.config.geocoding,
        }
        if dependency not in configs:
            raise ValueError(f"Unknown dependency: {dependency}")
        return self._get(
            f"resilience.{dependency}", lambda: ResilientClient(dependency, configs[dependency])
        )

    def resilience_stats(self) -> dict[str, Any]:
        return {
            name: self.get_resilient_client(name).get_stats()
            for name in ("reasoning", "market_data", "geocoding")
        }

    # ========================================
    # Reasoning clients
    # ========================================

    def get_reasoning_client(self) -> ReasoningClient:
        return self._get(
            "reasoning_client",
            lambda: ReasoningClient(
                registry=self.get_model_registry(),
                resilient=self.get_resilient_client("reasoning"),
                api_key=self.config.openai_api_key,
            ),
        )

    def get_market_reasoning_client(self) -> ReasoningClient:
        """Reasoning client throttled by the market_data limiter (market analysis stage)."""
        return self._get(
            "market_reasoning_client",
            lambda: ReasoningClient(
                registry=self.get_model_registry(),
                resilient=self.get_resilient_client("market_data"),
                api_key=self.config.openai_api_key,
            ),
        )

    # ========================================
    # Pipeline
    # ========================================

    def get_pipeline_controller(self) -> PipelineController:
        def _build() -> PipelineController:
            client = self.get_reasoning_client()
            cache = self.get_cache_store()
            return PipelineController(
                market_analysis=MarketAnalysisService(self.get_market_reasoning_client(), cache),
                zone_identification=ZoneIdentificationService(client),
                location_discovery=LocationDiscoveryService(client),
                viability_validation=ViabilityValidationService(
                    client, demographics=DemographicIndicatorCache(cache)
                ),
                strategic_scoring=StrategicScoringService(client),
                logger=AgentLogger("pipeline"),
            )

        return self._get("pipeline_controller", _build)

    # ========================================
    # Planning
    # ========================================

    def get_portfolio_optimizer(self) -> PortfolioOptimizer:
        return self._get("portfolio_optimizer", lambda: PortfolioOptimizer(self.get_reasoning_client()))

    def get_scenario_service(self) -> ScenarioModelingService:
        return self._get(
            "scenario_service",
            lambda: ScenarioModelingService(self.get_portfolio_optimizer(), self.get_reasoning_client()),
        )

    # ========================================
    # Expansion
    # ========================================

    def get_geocoder(self) -> GeocoderProtocol:
        return self._get(
            "geocoder",
            lambda: GeocodingClient(
                api_key=self.config.geocoding_api_key,
                resilient=self.get_resilient_client("geocoding"),
                base_url=self.config.geocoding_base_url,
                timeout=self.config.geocoding_timeout,
            ),
        )

    def get_expansion_workflow(self) -> ExpansionWorkflow:
        return self._get(
            "expansion_workflow",
            lambda: ExpansionWorkflow(
                flags=self.get_feature_flags(),
                simple_service=SimpleExpansionService(self.get_reasoning_client(), self.get_geocoder()),
                controller=self.get_pipeline_controller(),
                fallback=FallbackCandidateGenerator(),
            ),
        )

    # ========================================
    # Utilities
    # ========================================

    def override(self, name: str, instance: Any) -> None:
        """
        Inject a replacement (tests)

        Example:
            container.override("reasoning_client", fake_client)
        """
        self._overrides[name] = instance

    def reset(self) -> None:
        """Drop all cached instances and overrides"""
        self._instances.clear()
        self._overrides.clear()

    async def aclose(self) -> None:
        """Close network and database handles held by cached components"""
        geocoder = self._instances.get("geocoder")
        if isinstance(geocoder, GeocodingClient):
            await geocoder.close()
        cache = self._instances.get("cache_store")
        if cache is not None:
            await cache.close()

    @contextmanager
    def test_override(self, name: str, instance: Any):
        """
        Temporary override (context manager)

        Example:
            with container.test_override("portfolio_optimizer", fake):
                ...
            # previous value restored
        """
        had_override = name in self._overrides
        old_override = self._overrides.get(name)

        had_instance = name in self._instances
        old_instance = self._instances.get(name)

        self._overrides[name] = instance
        self._instances.pop(name, None)

        try:
            yield
        finally:
            if had_override:
                self._overrides[name] = old_override
            else:
                self._overrides.pop(name, None)

            if had_instance:
                self._instances[name] = old_instance
            else:
                self._instances.pop(name, None)
