import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from checkout_service.config import Settings
from checkout_service.database import build_engine, build_session_factory, init_db
from checkout_service.errors import CheckoutError, ConfigurationError
from checkout_service.gateway import GatewayClient
from checkout_service.messaging import EventPublisher, NullPublisher
from checkout_service.schemas import (
    InitiateResponse,
    IpnAcknowledgement,
    IpnPayload,
    PaymentInitiateRequest,
    PurchaseRead,
    load_json_body,
    parse_model,
)
from checkout_service.service import PaymentIntentService
from checkout_service.store import PurchaseStore

logger = logging.getLogger(__name__)

router = APIRouter()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_payment_service(request: Request) -> PaymentIntentService:
    return request.app.state.payment_service


@router.post("/api/initiate-payment", response_model=InitiateResponse)
async def initiate_payment(request: Request, service: PaymentIntentService = Depends(get_payment_service)):
    payload = load_json_body(await request.body())
    payment_request = parse_model(PaymentInitiateRequest, payload)
    result = await service.initiate(payment_request)
    return InitiateResponse(url=result.redirect_url)


@router.post("/api/ipn", response_model=IpnAcknowledgement)
async def receive_ipn(request: Request, service: PaymentIntentService = Depends(get_payment_service)):
    payload = load_json_body(await request.body(), status_code=400)
    ipn = parse_model(IpnPayload, payload, status_code=400)
    result = await service.reconcile(ipn)
    return IpnAcknowledgement(identifier=result.identifier, status=result.status)


@router.get("/api/purchases/{identifier}", response_model=PurchaseRead)
async def get_purchase(identifier: str, service: PaymentIntentService = Depends(get_payment_service)):
    purchase = await service.get_purchase(identifier)
    return PurchaseRead.model_validate(purchase)


@router.get("/health")
async def health():
    return {"status": "ok"}


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. Missing gateway keys abort startup with ConfigurationError."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings.database_url)
        await init_db(engine)
        http_client = httpx.AsyncClient(timeout=settings.gateway_timeout)
        publisher = EventPublisher(settings.rabbitmq_url) if settings.rabbitmq_url else NullPublisher()
        await publisher.connect()

        app.state.payment_service = PaymentIntentService(
            store=PurchaseStore(build_session_factory(engine)),
            gateway=GatewayClient(
                http_client,
                initiate_url=settings.gateway_initiate_url,
                public_key=settings.public_key,
            ),
            secret_key=settings.secret_key,
            publisher=publisher,
        )
        logger.info(
            "Checkout service ready (gateway %s, environment %s)",
            settings.gateway_initiate_url,
            settings.environment,
        )
        try:
            yield
        finally:
            await publisher.close()
            await http_client.aclose()
            await engine.dispose()

    app = FastAPI(title="Checkout Service", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.include_router(router)
    return app


def main() -> None:
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        configure_logging()
        logger.critical("Refusing to start: %s", e)
        raise SystemExit(1) from e
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
