import asyncio
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from quote_agent import __version__
from quote_agent.api.config_api import router as config_router
from quote_agent.api.state import get_agent, get_store
from quote_agent.config.settings import get_settings
from quote_agent.engine.models import CustomerContext
from quote_agent.engine.sales_personality import SalesPersonalityService
from quote_agent.utils.logger import setup_logging

setup_logging(get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Quote Agent API",
    description="Natural-language pricing agent for landscaping quotes",
    version=__version__,
)

# Enable CORS for the chat front end
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(config_router)


class CustomerContextModel(BaseModel):
    first_name: str = ""
    job_title: Optional[str] = None
    is_return_customer: Optional[bool] = None
    urgency_level: Optional[str] = None


class AgentRequest(BaseModel):
    message: str
    customer: Optional[CustomerContextModel] = None
    intent: Optional[str] = None


@app.get("/")
async def root():
    return {"status": "online", "message": "Quote Agent API Active"}


@app.post("/pricing-agent")
async def pricing_agent(req: AgentRequest):
    """
    Run the pricing agent on one chat message.

    The run happens in a worker thread under the latency budget; a timeout
    returns the apology message instead of a partial quote.
    """
    settings = get_settings()
    agent = get_agent()
    context = CustomerContext(**req.customer.model_dump()) if req.customer else None

    try:
        response = await asyncio.wait_for(
            asyncio.to_thread(agent.run, req.message, context, req.intent),
            timeout=settings.latency_budget_ms / 1000.0,
        )
    except asyncio.TimeoutError:
        logger.error("Pricing agent exceeded %.0f ms budget | text=%r", settings.latency_budget_ms, req.message)
        apology = SalesPersonalityService().format_apology(context)
        return {
            "response": apology.to_dict(),
            "stage": "timeout",
            "collection": None,
            "pricing": None,
            "timingsMs": {},
            "catalogGeneration": get_store().generation,
        }
    return response.to_dict()


@app.get("/system/status")
async def get_status():
    settings = get_settings()
    store = get_store()
    stats = store.get_stats()
    return {
        "engine_active": True,
        "catalog_version": stats['version'],
        "catalog_generation": stats['generation'],
        "services_count": stats['services'],
        "catalog_path": str(store.catalog_path) if store.catalog_path else None,
        "latency_budget_ms": settings.latency_budget_ms,
    }
