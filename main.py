import logging
import os
from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from pythonjsonlogger import jsonlogger
from routes import message_routes, notification_routes

# structured logging for the app and its modules
logger = logging.getLogger()
handler = logging.StreamHandler()
handler.setFormatter(jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
logger.addHandler(handler)
logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

app = FastAPI(title="Campus Book Swap API", version="1.0.0")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update this in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(message_routes)
app.include_router(notification_routes)

@app.get("/")
def root():
    return RedirectResponse(url="/docs")

@app.get("/healthz")
async def healthz():
    return {"status": "ok"}

@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info({"msg": "request_start", "method": request.method, "path": request.url.path})
    response = await call_next(request)
    logger.info({"msg": "request_end", "status": response.status_code})
    return response
