"""Application state coordinator: the only writer of the three live collections.

Clients, policies and products are held as tuples and replaced wholesale on
every mutation, so readers always see a consistent snapshot. Local mutation
is applied before any remote await; a remote failure never rolls it back.

Update and delete are local-only. A later sync-now from the sheet restores
deleted rows and reverts local edits unless push_all() is run first.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import date

import structlog

from src.insureflow.core.monitoring import record_sync_run
from src.insureflow.crm.errors import (
    ClientNotFoundError,
    DuplicatePolicyError,
    DuplicateProductError,
    PolicyNotFoundError,
    ProductNotFoundError,
    TransientSyncError,
)
from src.insureflow.crm.reconciler import (
    DEFAULT_BIRTHDAY,
    apply_policy,
    rebuild_clients,
    today_iso,
)
from src.insureflow.crm.schemas import (
    Client,
    ClientStatus,
    Policy,
    Product,
    SaveResult,
    SyncReport,
    SyncStatus,
)
from src.insureflow.crm.wizard import ConnectionWizard
from src.insureflow.services.gsuite.auth import REMOTE_ERRORS
from src.insureflow.services.gsuite.sheets import SheetsGateway

logger = structlog.get_logger(__name__)

PENDING_EMAIL = "pending@email.com"
PENDING_PHONE = "Pending"

APPEND_FAILED_NOTICE = "Saved locally, but failed to save to Sheet."
LOCAL_ONLY_NOTICE = (
    "Updated locally only. The change is not written to the Sheet "
    "until you push all policies."
)
EMPTY_SHEET_MESSAGE = "Connected Sheet is empty."


def new_client_id() -> str:
    return f"c-{uuid.uuid4().hex}"


class CRMCoordinator:
    """Owns the client, policy and product collections.

    Args:
        wizard: Connection wizard; its connection is used for remote calls.
        gateway: Sheets gateway for the Policies table.
        clients: Initial client roster.
        policies: Initial policies, newest first.
        products: Initial product library.
        today: Fixed date for last_contact stamps (tests). Defaults to today.
    """

    def __init__(
        self,
        wizard: ConnectionWizard,
        gateway: SheetsGateway,
        clients: Iterable[Client] = (),
        policies: Iterable[Policy] = (),
        products: Iterable[Product] = (),
        today: date | None = None,
    ) -> None:
        self._wizard = wizard
        self._gateway = gateway
        self._today = today
        self.clients: tuple[Client, ...] = tuple(clients)
        self.policies: tuple[Policy, ...] = tuple(policies)
        self.products: tuple[Product, ...] = tuple(products)

        wizard.set_sync_handler(self.sync_now)

    @property
    def wizard(self) -> ConnectionWizard:
        return self._wizard

    @property
    def connected(self) -> bool:
        return self._wizard.connected

    def _stamp(self) -> str:
        return today_iso(self._today)

    # ── Policies ────────────────────────────────────────────────────────

    async def save_policy(self, policy: Policy, is_new_product: bool = False) -> SaveResult:
        """Add a policy locally, upsert its holder, then append it to the sheet.

        Args:
            policy: The new policy.
            is_new_product: Register the plan in the product library if no
                product of that name exists yet.

        Returns:
            SaveResult. remote_saved is None when not connected, False with a
            notice when the append failed.

        Raises:
            DuplicatePolicyError: A policy with that id already exists.
        """
        if self.get_policy(policy.id) is not None:
            raise DuplicatePolicyError(f"Policy {policy.id} already exists")

        self.policies = (policy, *self.policies)
        client = self._upsert_holder(policy)

        product_added = False
        if is_new_product and not self._find_product(policy.plan_name):
            self.products = (
                *self.products,
                Product(
                    name=policy.plan_name,
                    type=policy.type,
                    default_tags=[policy.type.value],
                ),
            )
            product_added = True
            logger.info("crm.product_registered", name=policy.plan_name)

        logger.info(
            "crm.policy_saved",
            policy_id=policy.id,
            holder=policy.holder_name,
            client_id=client.id,
        )

        result = SaveResult(policy=policy, client=client, product_added=product_added)
        if not self.connected:
            return result

        try:
            await self._gateway.append_one(self._wizard.require_connection(), policy)
        except Exception as exc:
            logger.error("crm.append_failed", policy_id=policy.id, error=str(exc))
            return result.model_copy(
                update={"remote_saved": False, "notice": APPEND_FAILED_NOTICE}
            )

        return result.model_copy(update={"remote_saved": True})

    def _upsert_holder(self, policy: Policy) -> Client:
        stamp = self._stamp()
        existing = self._find_client_by_name(policy.holder_name)

        if existing is None:
            client = Client(
                id=new_client_id(),
                name=policy.holder_name,
                email=PENDING_EMAIL,
                phone=PENDING_PHONE,
                birthday=policy.client_birthday or DEFAULT_BIRTHDAY,
                total_policies=1,
                last_contact=stamp,
                status=ClientStatus.LEAD,
                tags=list(policy.extracted_tags),
            )
            self.clients = (client, *self.clients)
            logger.info("crm.client_created", client_id=client.id, name=client.name)
            return client

        client = apply_policy(existing, policy).model_copy(update={"last_contact": stamp})
        self.clients = tuple(client if c.id == existing.id else c for c in self.clients)
        return client

    def update_policy(self, policy: Policy) -> SaveResult:
        """Replace a policy by id. Not written to the sheet.

        Raises:
            PolicyNotFoundError: No policy with that id.
        """
        if not any(p.id == policy.id for p in self.policies):
            raise PolicyNotFoundError(f"Policy {policy.id} not found")

        self.policies = tuple(policy if p.id == policy.id else p for p in self.policies)
        logger.info("crm.policy_updated", policy_id=policy.id)

        return SaveResult(
            policy=policy,
            client=self._find_client_by_name(policy.holder_name),
            notice=LOCAL_ONLY_NOTICE if self.connected else None,
        )

    def delete_policy(self, policy_id: str) -> bool:
        """Remove a policy and decrement its holder's count (never below zero).

        Not written to the sheet. Returns False if the id is unknown.
        """
        policy = self.get_policy(policy_id)
        if policy is None:
            return False

        self.policies = tuple(p for p in self.policies if p.id != policy_id)
        self.clients = tuple(
            c.model_copy(update={"total_policies": max(0, c.total_policies - 1)})
            if c.name == policy.holder_name
            else c
            for c in self.clients
        )
        logger.info("crm.policy_deleted", policy_id=policy_id, holder=policy.holder_name)
        return True

    def get_policy(self, policy_id: str) -> Policy | None:
        return next((p for p in self.policies if p.id == policy_id), None)

    # ── Sync ────────────────────────────────────────────────────────────

    async def sync_now(self) -> SyncReport:
        """Pull every row from the sheet and rebuild the client roster.

        An empty sheet leaves local data untouched.

        Raises:
            NotConnectedError: The wizard is not connected.
            TransientSyncError: A remote call failed.
            ParseError: A stored row could not be decoded.
            AuthorizationError: The silent re-authorization was rejected.
        """
        connection = self._wizard.require_connection()

        try:
            await self._wizard.refresh_authorization()
            await self._gateway.ensure_structure(connection)
            fetched = await self._gateway.fetch_all(connection)
        except REMOTE_ERRORS as exc:
            record_sync_run("error")
            logger.error("crm.sync_failed", error=str(exc))
            raise TransientSyncError(f"Sync failed: {exc}") from exc
        except Exception:
            record_sync_run("error")
            raise

        if not fetched:
            record_sync_run("empty")
            logger.info("crm.sync_empty")
            return SyncReport(status=SyncStatus.EMPTY, message=EMPTY_SHEET_MESSAGE)

        roster = rebuild_clients(fetched, self._today)
        self.policies = tuple(fetched)
        self.clients = tuple(roster.values())

        record_sync_run("synced")
        logger.info(
            "crm.sync_completed",
            policies=len(self.policies),
            clients=len(self.clients),
        )
        return SyncReport(
            status=SyncStatus.SYNCED,
            policies=len(self.policies),
            clients=len(self.clients),
            message=f"Synced {len(self.policies)} policies.",
        )

    async def push_all(self) -> int:
        """Overwrite the sheet with every local policy.

        Raises:
            NotConnectedError: The wizard is not connected.
            TransientSyncError: A remote call failed.
        """
        connection = self._wizard.require_connection()
        snapshot = list(self.policies)

        try:
            await self._gateway.ensure_structure(connection)
            await self._gateway.overwrite_all(connection, snapshot)
        except REMOTE_ERRORS as exc:
            logger.error("crm.push_failed", error=str(exc))
            raise TransientSyncError(f"Push failed: {exc}") from exc

        logger.info("crm.push_completed", policies=len(snapshot))
        return len(snapshot)

    # ── Clients ─────────────────────────────────────────────────────────

    def get_client(self, client_id: str) -> Client:
        client = next((c for c in self.clients if c.id == client_id), None)
        if client is None:
            raise ClientNotFoundError(f"Client {client_id} not found")
        return client

    def _find_client_by_name(self, name: str) -> Client | None:
        return next((c for c in self.clients if c.name == name), None)

    def add_client(self, client: Client) -> Client:
        self.clients = (client, *self.clients)
        logger.info("crm.client_added", client_id=client.id)
        return client

    def update_client(self, client: Client) -> Client:
        """Replace a client by id.

        Raises:
            ClientNotFoundError: No client with that id.
        """
        self.get_client(client.id)
        self.clients = tuple(client if c.id == client.id else c for c in self.clients)
        logger.info("crm.client_updated", client_id=client.id)
        return client

    def policies_for_client(self, client_id: str) -> list[Policy]:
        client = self.get_client(client_id)
        return [p for p in self.policies if p.holder_name == client.name]

    # ── Products ────────────────────────────────────────────────────────

    def _find_product(self, name: str) -> Product | None:
        return next((p for p in self.products if p.name == name), None)

    def add_product(self, product: Product) -> Product:
        """Add a product to the library.

        Raises:
            DuplicateProductError: A product with that name exists.
        """
        if self._find_product(product.name):
            raise DuplicateProductError(f"Product '{product.name}' already exists")
        self.products = (product, *self.products)
        logger.info("crm.product_added", name=product.name)
        return product

    def update_product(self, original_name: str, product: Product) -> Product:
        """Replace the product called original_name (renames allowed).

        Raises:
            DuplicateProductError: A rename collides with another product.
            ProductNotFoundError: No product called original_name.
        """
        if self._find_product(original_name) is None:
            raise ProductNotFoundError(f"Product '{original_name}' not found")
        if product.name != original_name and self._find_product(product.name):
            raise DuplicateProductError(f"Product '{product.name}' already exists")

        self.products = tuple(
            product if p.name == original_name else p for p in self.products
        )
        logger.info("crm.product_updated", original_name=original_name, name=product.name)
        return product
