from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from utils.logger_factory import new_logger


app = FastAPI(title="DULU Payments API")


@app.middleware("http")
async def log_request_body(request: Request, call_next):
    log = new_logger("log_request_body")
    log.info(f"INCOMING REQUEST: {request.method} {request.url.path}")
    if request.method != "OPTIONS":  # Skip CORS preflight
        body = await request.body()
        # Verification codes travel in request bodies; keep them out of the logs
        if request.url.path.startswith("/api/verification"):
            log.info(f"Request body ({request.method} {request.url.path}): {len(body)} bytes (redacted)")
        elif len(body) > 0:
            log.info(f"Request body ({request.method} {request.url.path}): {body[:1000]!r}")
    # Starlette replays the cached body to the route handler
    response = await call_next(request)
    log.info(f"RESPONSE: {request.method} {request.url.path} -> {response.status_code}")
    return response

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"message": "DULU Payments API deployed."}

from api.verification_code import router as verification_code_router
from api.payments import router as payments_router
from api.payment_webhooks import router as payment_webhooks_router
from api.healthcheck import router as health_router

app.include_router(verification_code_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(payment_webhooks_router, prefix="/api")
app.include_router(health_router, prefix="/api")
