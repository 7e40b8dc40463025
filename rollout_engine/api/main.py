# rollout_engine/api/main.py
import logging

from fastapi import FastAPI

from rollout_engine.api.routes.capabilities import router as capabilities_router
from rollout_engine.api.routes.deployments import router as deployments_router
from rollout_engine.settings import get_settings

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(title="Rollout Engine API")


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(deployments_router)
app.include_router(capabilities_router)
