# auction_ingest/api/routes.py
import secrets
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from ..config import Settings, load_env_files
from ..errors import IngestConfigError
from ..pipeline import run_ingest
from ..report import RunReporter
from ..schemas import IngestOptions, RunReport
from ..utils import logger

router = APIRouter()


@lru_cache()
def get_settings() -> Settings:
    load_env_files()
    return Settings.from_env()


def require_cron_secret(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
):
    expected = settings.cron_secret
    if not expected or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/ingest", dependencies=[Depends(require_cron_secret)])
def trigger_ingest(options: IngestOptions, settings: Settings = Depends(get_settings)):
    try:
        result = run_ingest(options, settings)
    except IngestConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Ingest failed: %s", e)
        raise HTTPException(status_code=500, detail="Ingest failed")
    return {
        "report_path": str(result.report_path),
        "rejects_path": str(result.rejects_path),
        "report": result.report.model_dump(mode="json"),
    }


@router.get("/runs/{run_id}", response_model=RunReport)
def get_run(run_id: str, settings: Settings = Depends(get_settings)):
    report = RunReporter(settings.runs_dir).load(run_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return report
