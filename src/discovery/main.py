import logging
from contextlib import asynccontextmanager

from elasticsearch import AsyncElasticsearch
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import Settings, load_settings
from .errors import ValidationError, status_for
from .lib.cache import SearchCache
from .lib.candidates import RelatedCandidateSource, UnknownCandidateSource
from .lib.hydration import HydrationService
from .lib.metrics import MetricsSink, PrometheusMetricsSink
from .lib.orchestrator import SearchOrchestrator
from .lib.ranking import RankingEngine
from .lib.recommendations import ClusterMatcher, RecommendationEngine, UserEmbeddingService
from .lib.stores import (
    EsClusterStore,
    EsEmbeddingStore,
    EsInteractionStore,
    EsPopulationStore,
    EsProfileStore,
    EsRelationStore,
)
from .routers import candidates, health, recommendations, search
from .security import RateLimiter, verify_api_key

logger = logging.getLogger(__name__)

# One sink per process; prometheus_client refuses duplicate registrations.
metrics = PrometheusMetricsSink()


def build_services(app: FastAPI, es, settings: Settings, metrics: MetricsSink = metrics) -> None:
    """Wire stores, caches and services onto ``app.state``."""
    profiles = EsProfileStore(es)
    search_cache = SearchCache(
        max_size=settings.cache.max_size,
        default_ttl=settings.cache.search_ttl,
        sweep_interval=settings.cache.sweep_interval,
    )
    related_cache = SearchCache(
        max_size=settings.cache.max_size,
        default_ttl=settings.candidates.related_cache_ttl,
        sweep_interval=settings.cache.sweep_interval,
    )
    ranking = RankingEngine(
        weights=settings.weights,
        factors=settings.factors,
        thresholds=settings.thresholds,
        multipliers=settings.multipliers,
        max_distance_km=settings.search.max_distance_km,
        metrics=metrics,
    )

    app.state.es = es
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.caches = [search_cache, related_cache]
    app.state.orchestrator = SearchOrchestrator(
        related=RelatedCandidateSource(
            EsRelationStore(es), related_cache, settings.candidates, metrics
        ),
        unknown=UnknownCandidateSource(EsPopulationStore(es), settings.candidates, metrics),
        hydration=HydrationService(profiles, settings.hydration, metrics),
        ranking=ranking,
        profiles=profiles,
        cache=search_cache,
        rate_limiter=RateLimiter(settings.security),
        search_config=settings.search,
        cache_config=settings.cache,
        security_config=settings.security,
        rules=settings.candidates,
        metrics=metrics,
    )
    app.state.recommendations = RecommendationEngine(
        clusters=EsClusterStore(es),
        user_embeddings=UserEmbeddingService(
            EsEmbeddingStore(es, index="user_embeddings"),
            EsInteractionStore(es),
            settings.embedding,
            metrics,
        ),
        matcher=ClusterMatcher(settings.clusters),
        ranking=ranking,
        config=settings.clusters,
        metrics=metrics,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)

    es = AsyncElasticsearch(settings.elasticsearch_url, api_key=settings.elasticsearch_api_key)
    build_services(app, es, settings)
    for cache in app.state.caches:
        cache.start()
    logger.info("Discovery API started against %s", settings.elasticsearch_url)
    try:
        yield
    finally:
        for cache in app.state.caches:
            await cache.aclose()
        await es.close()


app = FastAPI(
    title="Discovery API",
    description="People search and content recommendation",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(search.router)
app.include_router(recommendations.router)
app.include_router(candidates.router)


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    err = ValidationError(
        "Invalid request",
        {
            "errors": [
                {"loc": list(e["loc"]), "message": e["msg"], "type": e["type"]}
                for e in exc.errors()
            ]
        },
    )
    getattr(request.app.state, "metrics", metrics).record_error(f"{err.kind}: {err.message}")
    return JSONResponse(status_code=status_for(err.kind), content=err.to_payload())


@app.get("/", dependencies=[Depends(verify_api_key)])
async def root():
    return {"message": "Discovery API"}
