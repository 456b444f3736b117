from typing import Optional
from fastapi import Depends, FastAPI, HTTPException, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from .auth import api_key_verifier, limiter
from .loop import ReconciliationLoop


def create_app(loop: Optional[ReconciliationLoop] = None, api_key: Optional[str] = None) -> FastAPI:
    """Status API for a running charger.

    ``loop`` may be None before startup. ``api_key`` guards the pass
    endpoints; without it they answer 500.
    """
    app = FastAPI(title="Ledger Charger - Status API")
    app.state.limiter = limiter
    app.state.loop = loop
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    verify_api_key = api_key_verifier(api_key)

    @app.get("/health")
    async def health():
        loop: Optional[ReconciliationLoop] = app.state.loop
        if loop is None:
            return {"ok": True, "loop_attached": False}
        processor = loop.executor.processor.health_check()
        return {"ok": bool(processor.get("ok")), "loop_attached": True, "processor": processor}

    @app.get("/passes/latest")
    @limiter.limit("60/minute")
    async def latest_pass(request: Request, details: bool = False, api_key: str = Depends(verify_api_key)):
        loop: Optional[ReconciliationLoop] = request.app.state.loop
        report = loop.last_report if loop else None
        if report is None:
            raise HTTPException(status_code=404, detail="No pass has completed yet")
        return report.to_full_dict() if details else report.to_summary_dict()

    return app
