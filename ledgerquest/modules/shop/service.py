"""
ShopService: spend coins on catalog items.

Prices come from ``shop.catalog`` (``item_id -> {name, price}``). The service
only moves coins and records the purchase on the ledger entry; ownership and
equip state belong to another subsystem.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ledgerquest.core.validation.input_validator import InputValidator
from ledgerquest.database.models import TransactionType
from ledgerquest.modules.shared.base_service import BaseService
from ledgerquest.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from ledgerquest.core.config.manager import ConfigManager
    from ledgerquest.core.event.bus import EventBus
    from ledgerquest.modules.account.mutator import AccountMutator


@dataclass(frozen=True)
class ShopItem:
    item_id: str
    name: str
    price: int


@dataclass(frozen=True)
class PurchaseResult:
    item: ShopItem
    new_balance: int
    ledger_entry_id: int


class ShopService(BaseService):
    component = "shop"

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        mutator: AccountMutator,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._mutator = mutator

    def get_item(self, item_id: str) -> ShopItem:
        """
        Raises:
            NotFoundError: Item is not in the configured catalog
        """
        item_id = InputValidator.validate_string(item_id, "item_id", max_length=64)
        catalog: Mapping[str, Any] = self.get_config("shop.catalog", {})
        entry = catalog.get(item_id)
        if entry is None:
            raise NotFoundError("ShopItem", item_id)
        price = InputValidator.validate_positive_integer(entry.get("price"), "price")
        return ShopItem(item_id=item_id, name=str(entry.get("name") or item_id), price=price)

    async def purchase(
        self,
        account_id: str,
        item_id: str,
        *,
        timeout: Optional[float] = None,
    ) -> PurchaseResult:
        """
        Debit the item's price.

        Raises:
            NotFoundError: Unknown account or item
            InsufficientFundsError: Balance below the price (nothing changes)
        """
        item = self.get_item(item_id)
        self.log_operation("shop.purchase", account_id=account_id, item_id=item.item_id)

        result = await self._mutator.apply_delta(
            account_id,
            -item.price,
            TransactionType.SHOP_PURCHASE,
            f"Purchased {item.name}",
            {"item_id": item.item_id, "price": item.price},
            timeout=timeout,
        )

        await self.emit_event(
            "shop.purchased",
            {
                "account_id": account_id,
                "item_id": item.item_id,
                "price": item.price,
                "new_balance": result.new_balance,
            },
        )
        return PurchaseResult(
            item=item, new_balance=result.new_balance, ledger_entry_id=result.ledger_entry_id
        )
