import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .routers import credits, inventory, orders

logging.getLogger("cylinderops").addHandler(logging.NullHandler())

app = FastAPI(title="Cylinder Ops API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(inventory.router)
app.include_router(orders.router)
app.include_router(credits.router)


@app.get("/")
def root():
    return {"status": "ok"}
