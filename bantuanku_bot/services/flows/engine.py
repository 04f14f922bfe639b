"""Flow dispatch.

`start_flow` installs a new flow on the session and returns its first prompt;
`handle_flow_step` routes one inbound message to the active flow. Both apply
the rules shared by every flow: cancel words always win, the money-creating
step needs a registered donor, and any exception inside a step clears the
flow and produces a fixed apology instead of propagating.
"""

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.flows import donation, fidyah, qurban, qurban_savings, savings_deposit, zakat
from bantuanku_bot.services.flows.common import MSG_CANCELLED, MSG_FLOW_ERROR, MSG_NOT_REGISTERED, FlowContext
from bantuanku_bot.services.flows.state import FlowState, FlowType
from bantuanku_bot.services.parsers import match_cancel

logger = get_logger("flow_engine")

FLOW_HANDLERS = {
    FlowType.ZAKAT: zakat,
    FlowType.DONATION: donation,
    FlowType.FIDYAH: fidyah,
    FlowType.QURBAN: qurban,
    FlowType.QURBAN_SAVINGS: qurban_savings,
    FlowType.QURBAN_SAVINGS_DEPOSIT: savings_deposit,
}


class FlowAlreadyActiveError(Exception):
    def __init__(self, active: FlowType):
        self.active = active
        super().__init__(f"Flow already active: {active.value}")


async def start_flow(ctx: FlowContext, flow: FlowState) -> str:
    """Install `flow` on the session and return its first prompt.

    Raises FlowAlreadyActiveError if the session is already inside a flow.
    """
    session = ctx.session
    if session.flow is not None:
        raise FlowAlreadyActiveError(session.flow.type)

    session.flow = flow
    logger.info(
        "Flow started",
        extra={"context": {"phone": session.phone, "flow": flow.type.value, "step": flow.step.value}},
    )
    try:
        return await FLOW_HANDLERS[flow.type].start(ctx, flow)
    except Exception as e:
        logger.error(
            "Flow start failed",
            extra={"context": {"phone": session.phone, "flow": flow.type.value, "error": str(e)}},
            exc_info=True,
        )
        ctx.end()
        return MSG_FLOW_ERROR


async def handle_flow_step(ctx: FlowContext, text: str) -> str:
    session = ctx.session
    flow = session.flow
    if flow is None:
        raise ValueError("No active flow")

    if match_cancel(text):
        logger.info(
            "Flow cancelled",
            extra={"context": {"phone": session.phone, "flow": flow.type.value, "step": flow.step.value}},
        )
        ctx.end()
        return MSG_CANCELLED

    if flow.at_money_step and not session.is_registered:
        logger.warning(
            "Unregistered donor reached a payment step",
            extra={"context": {"phone": session.phone, "flow": flow.type.value}},
        )
        ctx.end()
        return MSG_NOT_REGISTERED

    handler = FLOW_HANDLERS.get(flow.type)
    if handler is None:
        logger.error("Unknown flow type", extra={"context": {"phone": session.phone, "flow": str(flow.type)}})
        ctx.end()
        return MSG_FLOW_ERROR

    step_before = flow.step
    try:
        reply = await handler.handle(ctx, flow, text)
    except Exception as e:
        logger.error(
            "Flow step failed",
            extra={
                "context": {
                    "phone": session.phone,
                    "flow": flow.type.value,
                    "step": step_before.value,
                    "error": str(e),
                }
            },
            exc_info=True,
        )
        ctx.end()
        return MSG_FLOW_ERROR

    logger.debug(
        "Flow step handled",
        extra={
            "context": {
                "phone": session.phone,
                "flow": flow.type.value,
                "from_step": step_before.value,
                "to_step": session.flow.step.value if session.flow else None,
            }
        },
    )
    return reply
