"""Console services: event stream, reconciliation, ownership and state."""

from wpp_console.services.backend_client import BackendClient
from wpp_console.services.console import ConsoleSession
from wpp_console.services.conversation_store import ConversationStore
from wpp_console.services.event_journal import EventJournal
from wpp_console.services.event_transport import EventTransport
from wpp_console.services.ownership import OwnershipStateMachine
from wpp_console.services.projector import project_conversations
from wpp_console.services.reconciler import Reconciler, ReconcileResult
from wpp_console.services.registry import ConsoleRegistry

__all__ = [
    "BackendClient",
    "ConsoleRegistry",
    "ConsoleSession",
    "ConversationStore",
    "EventJournal",
    "EventTransport",
    "OwnershipStateMachine",
    "ReconcileResult",
    "Reconciler",
    "project_conversations",
]
