import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gnosis.auth.router import router as auth_router
from gnosis.billing.paypal_router import router as paypal_router
from gnosis.billing.plan_router import router as plan_router
from gnosis.billing.plan_selection_router import router as plan_selection_router
from gnosis.billing.stripe_router import router as stripe_router
from gnosis.billing.subscription_router import router as subscription_router
from gnosis.chat.router import router as chat_router
from gnosis.community.about_us_router import router as about_us_router
from gnosis.community.invitations_router import router as invitations_router
from gnosis.community.reviews_router import router as reviews_router
from gnosis.core.database import create_indexes
from gnosis.core.responses import register_exception_handlers
from gnosis.core.security import init_firebase
from gnosis.learning.achievement_router import router as achievement_router
from gnosis.learning.branch_router import router as branch_router
from gnosis.learning.level_router import router as level_router
from gnosis.learning.question_router import router as question_router
from gnosis.packets.router import router as packet_router
from gnosis.users.dashboard_router import router as dashboard_router
from gnosis.users.profile_router import router as profile_router
from gnosis.users.router import router as users_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Gnosis API", version="1.0.0")


@app.on_event("startup")
async def startup_event():
    init_firebase()
    await create_indexes()
    logger.info("✅ Gnosis API started")


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# ==================== ROUTER REGISTRATION ====================
app.include_router(auth_router, prefix="/api/auth")
app.include_router(branch_router, prefix="/api/branches")
app.include_router(question_router, prefix="/api/questions")
app.include_router(level_router, prefix="/api/levels")
app.include_router(achievement_router, prefix="/api/achievements")
app.include_router(plan_router, prefix="/api/plans")
app.include_router(subscription_router, prefix="/api/subscriptions")
app.include_router(plan_selection_router, prefix="/api/plan-selection")
app.include_router(stripe_router, prefix="/api/stripe")
app.include_router(paypal_router, prefix="/api/paypal")
app.include_router(chat_router, prefix="/api/chat")
app.include_router(reviews_router, prefix="/api/reviews")
app.include_router(invitations_router, prefix="/api/invitations")
app.include_router(about_us_router, prefix="/api/about-us")
app.include_router(packet_router, prefix="/api/questionPacket")
app.include_router(profile_router, prefix="/api/profile")
app.include_router(dashboard_router, prefix="/api/dashboard")
app.include_router(users_router, prefix="/api/users")
# ============================================================


@app.get("/")
async def root():
    return {
        "message": "Welcome to Gnosis API",
        "project": "Gnosis",
        "status": "Server is running successfully",
        "version": "1.0.0",
    }


@app.get("/health")
async def health():
    return {"status": "ok"}
