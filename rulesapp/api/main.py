from fastapi import FastAPI

from rulesapp.api.routes_admin import router as admin_router
from rulesapp.api.routes_chat import router as chat_router
from rulesapp.core.config import settings
from rulesapp.core.logging_utils import setup_logging

setup_logging(settings.log_level, json_logs=settings.log_json)

app = FastAPI(title="Rulebook Assistant")

app.include_router(chat_router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}
