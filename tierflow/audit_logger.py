import os
from typing import Any

from tierflow.event_bus import EventBus, WorkflowEvent


class AuditLogger:
    """
    Audit Logger that subscribes to an Event Bus and writes events
    to an append-only JSONL file.
    """

    def __init__(self, file_path: Any, event_bus: EventBus):
        self.file_path = str(file_path)
        self.event_bus = event_bus
        self.event_bus.subscribe(self.log_event)

    def log_event(self, event: WorkflowEvent) -> None:
        """
        Callback to handle incoming events and append them to the JSONL file.
        """
        # Directory is created on first write so an idle logger leaves no trace.
        os.makedirs(os.path.dirname(os.path.abspath(self.file_path)), exist_ok=True)
        with open(self.file_path, "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")
