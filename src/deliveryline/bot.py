import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from deliveryline.address import AddressAccumulator
from deliveryline.config import Settings, validate_config
from deliveryline.controller import CallController
from deliveryline.database import Database
from deliveryline.geocoding import GoogleAddressValidator
from deliveryline.intent import IntentResolver
from deliveryline.llm import OpenAIClient
from deliveryline.repository import CallRepository
from deliveryline.responder import ResponseGenerator
from deliveryline.session_store import SessionStore
from deliveryline.speech import ElevenLabsSynthesizer
from deliveryline.state_machine import StateMachine
from deliveryline.twiml import ResponseComposer

load_dotenv()

logger = logging.getLogger(__name__)

EVICTION_INTERVAL_SECONDS = 60.0


def build_controller(settings: Settings, repository: CallRepository) -> tuple[CallController, list]:
    """Wire the production collaborators. Returns the controller and the clients to close."""
    timeout = settings.collaborator_timeout
    llm = OpenAIClient(settings.openai_api_key, model=settings.openai_model, timeout=timeout)
    geocoder = GoogleAddressValidator(settings.google_maps_api_key, timeout=timeout)
    synthesizer = ElevenLabsSynthesizer(
        settings.elevenlabs_api_key,
        audio_dir=settings.audio_dir,
        public_base_url=settings.base_url,
        voice_id=settings.elevenlabs_voice_id,
        timeout=timeout,
    )
    for name, client in (("OpenAI", llm), ("Google geocoding", geocoder), ("ElevenLabs", synthesizer)):
        if not client.configured:
            logger.warning("%s not configured; using local fallback", name)

    controller = CallController(
        store=SessionStore(ttl_seconds=settings.session_ttl_seconds),
        machine=StateMachine(strict_confirmation=settings.strict_confirmation),
        intents=IntentResolver(
            llm, threshold=settings.intent_confidence_threshold, timeout=timeout
        ),
        addresses=AddressAccumulator(geocoder, timeout=timeout),
        responder=ResponseGenerator(llm, timeout=timeout),
        composer=ResponseComposer(synthesizer, say_fallback=settings.say_fallback),
        repository=repository,
        live_agent_number=settings.live_agent_number,
    )
    return controller, [llm, geocoder, synthesizer]


async def _evict_idle_sessions(store: SessionStore, interval: float = EVICTION_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval)
        store.evict_expired()


def _twiml(xml: str) -> Response:
    return Response(content=xml, media_type="application/xml")


async def _form_fields(request: Request) -> dict:
    try:
        form = await request.form()
    except Exception as e:
        logger.warning("Unreadable webhook body on %s: %s", request.url.path, e)
        return {}
    return {key: str(value) for key, value in form.items()}


def create_app(
    settings: Settings | None = None,
    database: Database | None = None,
    controller: CallController | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    database = database or Database(settings.database_url)
    clients = []
    if controller is None:
        controller, clients = build_controller(settings, CallRepository(database))
    repository = controller.repository
    store = controller.store

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await database.create_all()
        sweeper = asyncio.create_task(_evict_idle_sessions(store))
        logger.info("Delivery line ready at %s", settings.base_url)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            for client in clients:
                await client.close()
            await database.close()

    app = FastAPI(title="Delivery Line Voice Agent", lifespan=lifespan)
    app.state.controller = controller

    audio_dir = Path(settings.audio_dir)
    audio_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/audio", StaticFiles(directory=audio_dir), name="audio")

    @app.post("/webhook/voice")
    async def voice_webhook(request: Request):
        form = await _form_fields(request)
        xml = await controller.start_call(
            form.get("CallSid", ""), form.get("From", ""), form.get("CallStatus", "")
        )
        return _twiml(xml)

    async def _turn(request: Request, route: str) -> Response:
        form = await _form_fields(request)
        logger.debug("/webhook/%s %s: %r", route, form.get("CallSid"), form.get("SpeechResult"))
        xml = await controller.handle_turn(
            form.get("CallSid", ""), form.get("SpeechResult", ""), route
        )
        return _twiml(xml)

    @app.post("/webhook/gather")
    async def gather_webhook(request: Request):
        return await _turn(request, "gather")

    @app.post("/webhook/address")
    async def address_webhook(request: Request):
        return await _turn(request, "address")

    @app.post("/webhook/confirm")
    async def confirm_webhook(request: Request):
        return await _turn(request, "confirm")

    @app.post("/webhook/name")
    async def name_webhook(request: Request):
        return await _turn(request, "name")

    @app.get("/health")
    async def health():
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            await database.ping()
            stats = await repository.counts()
        except SQLAlchemyError as e:
            logger.error("Health check failed: %s", e)
            return JSONResponse(
                {
                    "status": "unhealthy",
                    "timestamp": timestamp,
                    "database": "disconnected",
                    "error": str(e),
                },
                status_code=500,
            )
        return {
            "status": "healthy",
            "timestamp": timestamp,
            "database": "connected",
            "stats": stats,
            "activeSessions": len(store),
        }

    @app.get("/api/customers")
    async def list_customers():
        try:
            customers = await repository.list_customers()
        except SQLAlchemyError as e:
            logger.error("Listing customers failed: %s", e)
            return JSONResponse({"error": "Failed to fetch customers"}, status_code=500)
        return [c.as_dict(include_related=True) for c in customers]

    @app.get("/api/service-requests")
    async def list_service_requests():
        try:
            requests = await repository.list_service_requests()
        except SQLAlchemyError as e:
            logger.error("Listing service requests failed: %s", e)
            return JSONResponse({"error": "Failed to fetch service requests"}, status_code=500)
        return [r.as_dict(include_customer=True) for r in requests]

    @app.get("/api/call-logs")
    async def list_call_logs():
        try:
            logs = await repository.list_call_logs()
        except SQLAlchemyError as e:
            logger.error("Listing call logs failed: %s", e)
            return JSONResponse({"error": "Failed to fetch call logs"}, status_code=500)
        return [c.as_dict(include_customer=True) for c in logs]

    return app


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_config()
    uvicorn.run(
        "deliveryline.bot:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
    )


if __name__ == "__main__":
    main()
