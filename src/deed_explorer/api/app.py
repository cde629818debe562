from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from deed_explorer.explorer import ParcelExplorer, build_explorer


logger = logging.getLogger("deed.api")


class HighlightRequest(BaseModel):
    grantee: str
    origin_pin: str


def _explorer(request: Request) -> ParcelExplorer:
    explorer = getattr(request.app.state, "explorer", None)
    if explorer is None:
        explorer = build_explorer()
        request.app.state.explorer = explorer
    return explorer


def create_app(explorer: Optional[ParcelExplorer] = None) -> FastAPI:
    app = FastAPI(title="Deed Explorer API")
    app.state.explorer = explorer

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/api/parcels/{pin}")
    async def parcel_documents(pin: str, request: Request):
        ex = _explorer(request)
        try:
            panel = await ex.select_parcel(pin)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        out = panel.to_dict()
        out["error"] = ex.error_message
        return out

    @app.get("/api/entities/{name}")
    async def entity(name: str, request: Request):
        data = await _explorer(request).load_entity(name)
        if data is None or data.is_empty:
            raise HTTPException(status_code=404, detail="no entity data")
        return {"name": name, **data.to_dict()}

    @app.get("/api/entities/{name}/exists")
    async def entity_exists(name: str, request: Request):
        return {"name": name, "exists": await _explorer(request).grantee_exists(name)}

    @app.post("/api/highlight")
    async def highlight(payload: HighlightRequest, request: Request):
        ex = _explorer(request)
        selection = await ex.select_grantee(payload.grantee, payload.origin_pin)
        if selection is None:
            raise HTTPException(status_code=404, detail="no associated parcels")
        return selection.to_dict()

    @app.delete("/api/highlight")
    def clear_highlight(request: Request):
        ex = _explorer(request)
        ex.clear_selection()
        return ex.highlights.selection.to_dict()

    @app.get("/api/cache/stats")
    def cache_stats(request: Request):
        return _explorer(request).stats()

    @app.on_event("shutdown")
    async def _close_explorer():
        ex = getattr(app.state, "explorer", None)
        if ex is not None:
            logger.info("closing explorer HTTP client")
            await ex.aclose()

    return app


app = create_app()
