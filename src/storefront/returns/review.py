"""Admin review of return requests: approve, reject, receive, close."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.returns.return_request import ReturnRequest


@storefront.command(part_of="ReturnRequest")
class ApproveReturn:
    return_id = Identifier(required=True)
    admin_id = String(required=True, max_length=100)
    note = String(max_length=1000)


@storefront.command(part_of="ReturnRequest")
class RejectReturn:
    return_id = Identifier(required=True)
    admin_id = String(required=True, max_length=100)
    reason = String(max_length=1000)


@storefront.command(part_of="ReturnRequest")
class ReceiveReturnItem:
    return_id = Identifier(required=True)
    admin_id = String(required=True, max_length=100)
    note = String(max_length=1000)


@storefront.command(part_of="ReturnRequest")
class CloseReturn:
    return_id = Identifier(required=True)
    admin_id = String(required=True, max_length=100)
    note = String(max_length=1000)


@storefront.command_handler(part_of=ReturnRequest)
class ReturnReviewHandler:
    @handle(ApproveReturn)
    def approve_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.approve(command.admin_id, command.note)
        repo.add(request)

    @handle(RejectReturn)
    def reject_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.reject(command.reason, command.admin_id)
        repo.add(request)

    @handle(ReceiveReturnItem)
    def receive_return_item(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.mark_item_received(command.admin_id, command.note)
        repo.add(request)

    @handle(CloseReturn)
    def close_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        request = repo.get(command.return_id)
        request.close(command.admin_id, command.note)
        repo.add(request)
