from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from api import schedule, telegram
from core.runtime import MentorRuntime
from infrastructure.logging.logger import setup_logger

logger = setup_logger("mentor")

app = FastAPI(
    title="Samoyed Mentor",
    version="0.1.0",
    description="Помощник владельца щенка самоеда"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Подключаем эндпоинты
app.include_router(telegram.router)
app.include_router(schedule.router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.on_event("startup")
async def start_runtime():
    runtime = getattr(app.state, "runtime", None) or MentorRuntime()
    app.state.runtime = runtime
    await runtime.start()


@app.on_event("shutdown")
async def stop_runtime():
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        await runtime.shutdown()
