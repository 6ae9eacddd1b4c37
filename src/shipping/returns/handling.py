"""Return workflow: commands and handler."""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from shipping.bus import outbox
from shipping.domain import shipping
from shipping.returns.return_request import ReturnRequest

logger = structlog.get_logger(__name__)


@shipping.command(part_of="ReturnRequest")
class RequestReturn:
    order_id = Identifier(required=True)
    reason = String(max_length=500)


@shipping.command(part_of="ReturnRequest")
class ApproveReturn:
    return_id = Identifier(required=True)


@shipping.command(part_of="ReturnRequest")
class RejectReturn:
    return_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@shipping.command(part_of="ReturnRequest")
class CompleteReturn:
    return_id = Identifier(required=True)


@shipping.command_handler(part_of=ReturnRequest)
class ReturnHandler:
    @handle(RequestReturn)
    def request_return(self, command):
        return_request = ReturnRequest.request(command.order_id, reason=command.reason)
        current_domain.repository_for(ReturnRequest).add(return_request)
        return str(return_request.id)

    @handle(ApproveReturn)
    def approve_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        return_request = repo.get(command.return_id)
        return_request.approve()
        repo.add(return_request)

    @handle(RejectReturn)
    def reject_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        return_request = repo.get(command.return_id)
        return_request.reject(command.reason)
        repo.add(return_request)

    @handle(CompleteReturn)
    def complete_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        return_request = repo.get(command.return_id)
        completed = return_request.complete()
        repo.add(return_request)
        outbox.append(completed, "ReturnRequest", return_request.id)

        logger.info("Return completed", return_id=str(return_request.id), order_id=str(return_request.order_id))
