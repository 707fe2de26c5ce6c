import logging

from fastapi import FastAPI

from gradebook.core.logging_middleware import LoggingMiddleware
from gradebook.db.init_db import init_db
from gradebook.routers.categories import router as categories_router
from gradebook.routers.gradebooks import router as gradebooks_router
from gradebook.routers.items import router as items_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(title="Gradebook Engine")

# Middleware
app.add_middleware(LoggingMiddleware)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()


# Include routers (category/item routes define their own full paths)
app.include_router(gradebooks_router, prefix="/gradebooks", tags=["gradebooks"])
app.include_router(categories_router, tags=["categories"])
app.include_router(items_router, tags=["items"])
