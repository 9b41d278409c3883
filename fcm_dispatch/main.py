from __future__ import annotations

from fastapi import FastAPI

from fcm_dispatch.api.routes import push
from fcm_dispatch.core.exceptions import dispatch_exception_handler, global_exception_handler
from fcm_dispatch.core.lifespan import lifespan
from fcm_dispatch.dispatch.contracts import DispatchError

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(DispatchError, dispatch_exception_handler)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(push.router, prefix="/v1/push", tags=["push"])
