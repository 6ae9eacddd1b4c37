"""Exchange workflow: commands and handler.

Approval and the return of the original item each append their stock
compensation to the outbox in the same transaction as the state change.
"""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain
from shared import compensation

from shipping.bus import outbox
from shipping.domain import shipping
from shipping.exchange.exchange import Exchange

logger = structlog.get_logger(__name__)


@shipping.command(part_of="Exchange")
class RequestExchange:
    order_id = Identifier(required=True)
    original_sku_id = String(required=True, max_length=100)
    new_sku_id = String(required=True, max_length=100)
    quantity = Integer(default=1, min_value=1)
    reason = String(max_length=500)


@shipping.command(part_of="Exchange")
class ApproveExchange:
    exchange_id = Identifier(required=True)


@shipping.command(part_of="Exchange")
class RejectExchange:
    exchange_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@shipping.command(part_of="Exchange")
class CompleteExchangeReturn:
    exchange_id = Identifier(required=True)


@shipping.command(part_of="Exchange")
class CompleteExchange:
    exchange_id = Identifier(required=True)


@shipping.command_handler(part_of=Exchange)
class ExchangeHandler:
    @handle(RequestExchange)
    def request_exchange(self, command):
        exchange = Exchange.request(
            order_id=command.order_id,
            original_sku_id=command.original_sku_id,
            new_sku_id=command.new_sku_id,
            quantity=command.quantity,
            reason=command.reason,
        )
        current_domain.repository_for(Exchange).add(exchange)
        return str(exchange.id)

    @handle(ApproveExchange)
    def approve_exchange(self, command):
        repo = current_domain.repository_for(Exchange)
        exchange = repo.get(command.exchange_id)
        approved = exchange.approve()
        repo.add(exchange)

        outbox.append(approved, "Exchange", exchange.id)
        for movement in compensation.exchange_approved(approved):
            outbox.append(movement, "Exchange", exchange.id)

        logger.info(
            "Exchange approved",
            exchange_id=str(exchange.id),
            original_sku_id=exchange.original_sku_id,
            new_sku_id=exchange.new_sku_id,
            changes_sku=exchange.changes_sku,
        )

    @handle(RejectExchange)
    def reject_exchange(self, command):
        repo = current_domain.repository_for(Exchange)
        exchange = repo.get(command.exchange_id)
        exchange.reject(command.reason)
        repo.add(exchange)

    @handle(CompleteExchangeReturn)
    def complete_exchange_return(self, command):
        repo = current_domain.repository_for(Exchange)
        exchange = repo.get(command.exchange_id)
        returned = exchange.complete_return()
        repo.add(exchange)

        outbox.append(returned, "Exchange", exchange.id)
        for movement in compensation.exchange_return_completed(returned):
            outbox.append(movement, "Exchange", exchange.id)

    @handle(CompleteExchange)
    def complete_exchange(self, command):
        repo = current_domain.repository_for(Exchange)
        exchange = repo.get(command.exchange_id)
        completed = exchange.complete()
        repo.add(exchange)
        outbox.append(completed, "Exchange", exchange.id)
