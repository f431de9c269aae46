import logging
import random

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from olympiad.admin.admin_router import router as admin_router
from olympiad.coordinators.bank_lookup import IfscLookup
from olympiad.coordinators.coordinator_router import router as coordinator_router
from olympiad.core.config import Settings
from olympiad.core.errors import register_exception_handlers
from olympiad.core.store import FirebaseStore, init_firebase
from olympiad.notifications.mailer import SmtpMailer
from olympiad.payments.payment_router import RazorpayGateway, router as payment_router
from olympiad.schools.school_router import router as school_router
from olympiad.scoring.pipeline import ScoringPipeline
from olympiad.scoring.tables import load_reference_tables
from olympiad.students.student_router import router as student_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings = None,
    store=None,
    tables=None,
    mailer=None,
    payments=None,
    bank_lookup=None,
    rng: random.Random = None,
) -> FastAPI:
    """
    Build the API with every collaborator on app.state

    Anything not passed in is built from settings; tests pass in-memory
    replacements for the store and the outbound services.
    """
    if settings is None:
        load_dotenv()
        settings = Settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # fails fast on malformed tier / rank files
    tables = tables or load_reference_tables(settings.DATA_DIR, settings.max_scores)
    if store is None:
        store = FirebaseStore(init_firebase(settings))
    rng = rng or random.Random()

    app = FastAPI(title="Olympiad API")
    app.state.settings = settings
    app.state.store = store
    app.state.tables = tables
    app.state.rng = rng
    app.state.pipeline = ScoringPipeline(store, tables, settings.CERTIFICATE_PREFIX, rng)
    app.state.mailer = mailer or SmtpMailer(settings)
    app.state.payments = payments or RazorpayGateway(settings)
    app.state.bank_lookup = bank_lookup or IfscLookup(settings.IFSC_LOOKUP_URL)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ==================== ROUTER REGISTRATION ====================
    app.include_router(student_router)
    app.include_router(coordinator_router)
    app.include_router(school_router)
    app.include_router(admin_router)
    app.include_router(payment_router)
    # ============================================================

    @app.get("/")
    async def root():
        return {"status": "success", "message": "Olympiad API is running"}

    logger.info(f"✅ Olympiad API ready ({len(tables.category_tiers)} incentive tiers loaded)")
    return app
