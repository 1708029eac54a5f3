"""Payout decisions — approve, reject, cancel and mark paid."""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.payout.payout import Payout
from marketplace.wallet.service import wallet_for
from marketplace.wallet.wallet import SellerWallet

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payout")
class ApprovePayout:
    payout_id = Identifier(required=True)
    admin_note = String(max_length=1000)


@marketplace.command(part_of="Payout")
class RejectPayout:
    payout_id = Identifier(required=True)
    admin_note = String(max_length=1000)


@marketplace.command(part_of="Payout")
class CancelPayout:
    payout_id = Identifier(required=True)
    seller_id = Identifier(required=True)


@marketplace.command(part_of="Payout")
class MarkPayoutPaid:
    payout_id = Identifier(required=True)
    amount_paid = Float()
    receipt_urls = Text()  # JSON list
    admin_note = String(max_length=1000)


@marketplace.command_handler(part_of=Payout)
class PayoutReviewHandler:
    @handle(ApprovePayout)
    def approve(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.approve(command.admin_note)
        repo.add(payout)
        logger.info("Payout approved", payout_id=command.payout_id)

    @handle(RejectPayout)
    def reject(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.reject(command.admin_note)

        wallet = wallet_for(payout.seller_id)
        wallet.return_to_available(payout.amount_requested, reference=str(payout.id))
        current_domain.repository_for(SellerWallet).add(wallet)
        repo.add(payout)
        logger.info("Payout rejected", payout_id=command.payout_id, returned=payout.amount_requested)

    @handle(CancelPayout)
    def cancel(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        payout.cancel(command.seller_id)

        wallet = wallet_for(payout.seller_id)
        wallet.return_to_available(payout.amount_requested, reference=str(payout.id))
        current_domain.repository_for(SellerWallet).add(wallet)
        repo.add(payout)
        logger.info("Payout cancelled", payout_id=command.payout_id, returned=payout.amount_requested)

    @handle(MarkPayoutPaid)
    def mark_paid(self, command):
        repo = current_domain.repository_for(Payout)
        payout = repo.get(command.payout_id)
        receipts = json.loads(command.receipt_urls) if command.receipt_urls else []
        unpaid = payout.mark_paid(command.amount_paid, receipts, command.admin_note)

        wallet = wallet_for(payout.seller_id)
        wallet.complete_payout(payout.amount_paid, reference=str(payout.id))
        if unpaid > 0:
            wallet.return_to_available(unpaid, reference=str(payout.id))
        current_domain.repository_for(SellerWallet).add(wallet)
        repo.add(payout)
        logger.info(
            "Payout paid",
            payout_id=command.payout_id,
            amount_paid=payout.amount_paid,
            returned=unpaid,
        )
