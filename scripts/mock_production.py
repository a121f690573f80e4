#!/usr/bin/env python3
"""
Fake production API for trying out the mock API locally.

Serves one endpoint per response kind the mock API knows how to record:
- /api/articles       - JSON
- /api/articles/{id}  - JSON, 404 for unknown ids
- /api/feed           - JSON, or JSONP when ?callback= is given
- /pages/about        - HTML
- /assets/logo.png    - binary (the mock API refuses to record it)

Run with: python scripts/mock_production.py
Listens on: http://localhost:4444
"""
from __future__ import annotations

import json
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
import uvicorn

app = FastAPI(title="Fake Production API", description="Upstream for recording mock API fixtures")

ARTICLES = {
    1: {"id": 1, "title": "Recording fixtures", "author": "ops"},
    2: {"id": 2, "title": "Replaying fixtures", "author": "qa"},
}


def log_request(request: Request):
    """Log every request that reaches production, so cache hits are easy to spot."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    query = f"?{request.url.query}" if request.url.query else ""
    print(f"[{timestamp}] {request.method} {request.url.path}{query}")


@app.get("/api/articles")
async def articles(request: Request):
    log_request(request)
    return JSONResponse({"articles": list(ARTICLES.values())})


@app.get("/api/articles/{article_id}")
async def article(article_id: int, request: Request):
    log_request(request)
    if article_id not in ARTICLES:
        raise HTTPException(status_code=404, detail="Article not found")
    return JSONResponse(ARTICLES[article_id])


@app.get("/api/feed")
async def feed(request: Request, callback: str | None = None):
    log_request(request)
    payload = {"generated_at": datetime.now().isoformat(), "items": list(ARTICLES)}
    if callback:
        return Response(f"{callback}({json.dumps(payload)})", media_type="application/javascript")
    return JSONResponse(payload)


@app.get("/pages/about")
async def about(request: Request):
    log_request(request)
    return HTMLResponse("<html><body><h1>About</h1></body></html>")


@app.get("/assets/logo.png")
async def logo(request: Request):
    log_request(request)
    return Response(b"\x89PNG\r\n\x1a\n", media_type="image/png")


@app.get("/health")
async def health():
    """Health check."""
    return {"status": "healthy", "server": "fake-production"}


if __name__ == "__main__":
    print("\n📡 Fake Production API")
    print("=" * 50)
    print("Listening on http://localhost:4444")
    print("Endpoints:")
    print("  GET /api/articles         - JSON")
    print("  GET /api/articles/{id}    - JSON (404 if unknown)")
    print("  GET /api/feed[?callback=] - JSON or JSONP")
    print("  GET /pages/about          - HTML")
    print("  GET /assets/logo.png      - binary (not recordable)")
    print("=" * 50 + "\n")

    uvicorn.run(app, host="127.0.0.1", port=4444, log_level="warning")
