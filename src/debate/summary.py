"""Short abstract of a stored incident decision, attached after the record is saved."""

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from src.agent.llm import message_text
from src.debate.prompts import SUMMARY_PROMPT, SUMMARY_USER_TEMPLATE
from src.memory.models import IncidentRecord
from src.observability.callbacks import llm_config


async def generate_summary(llm: BaseChatModel, incident: IncidentRecord) -> str:
    """Ask the model for a 2-3 sentence summary of what was decided and why."""
    hypotheses = incident["hypotheses"]
    content = SUMMARY_USER_TEMPLATE.format(
        question=incident["question"],
        reliability=hypotheses["reliability"],
        cost=hypotheses["cost"],
        ux=hypotheses["ux"],
        decision=incident["decision"],
        reasoning="; ".join(incident["reasoning"]),
    )
    response = await llm.ainvoke(
        [SystemMessage(content=SUMMARY_PROMPT), HumanMessage(content=content)],
        config=llm_config("summary"),
    )
    return message_text(response).strip()
