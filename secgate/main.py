from fastapi import FastAPI

from secgate.api import gate_routes, run_routes
from secgate.core.config import APP_VERSION
from secgate.core.logging import setup_logging

setup_logging()

tags_metadata = [
    {
        "name": "runs",
        "description": "Trigger pipeline runs (scan -> combine -> gate -> redeploy) and read their persisted results.",
    },
    {
        "name": "gate",
        "description": "Evaluate the quality gate over scanner reports produced elsewhere.",
    },
    {
        "name": "health",
        "description": "Liveness probe.",
    },
]

app = FastAPI(
    title="secgate",
    version=APP_VERSION,
    description="Security pipeline orchestrator: CodeQL, Snyk and OWASP ZAP results, one quality gate.",
    openapi_tags=tags_metadata,
)

app.include_router(run_routes.router)
app.include_router(gate_routes.router)


@app.get("/health", tags=["health"], summary="Health check")
def health() -> dict[str, str]:
    return {"status": "healthy", "version": APP_VERSION}
