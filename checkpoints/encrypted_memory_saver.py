import json
from typing import Any, Iterable, Iterator, Optional, Sequence, Tuple

from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import ChannelVersions, Checkpoint, CheckpointMetadata, CheckpointTuple
from langgraph.checkpoint.memory import MemorySaver

from .crypto import FieldCipher

ENCRYPTED_MARKER = "__enc__"

CHANNEL_VALUES = "channel_values"
WRITES = "writes"
METADATA = "metadata"


def _aad(config: RunnableConfig, section: str, key: str) -> bytes:
    thread_id = config["configurable"]["thread_id"]
    checkpoint_ns = config["configurable"].get("checkpoint_ns", "")
    return f"{thread_id}|{checkpoint_ns}|{section}|{key}".encode("utf-8")


class EncryptedMemorySaver(MemorySaver):
    """In-process checkpointer that seals selected keys with AES-GCM.

    A key listed in ``encrypt_keys`` is sealed wherever it shows up: as a
    channel, as a pending write, or nested in a graph input such as the
    ``__start__`` channel. Everything is opened again on read.
    """

    def __init__(self, cipher: FieldCipher, encrypt_keys: Iterable[str], **kwargs: Any):
        super().__init__(**kwargs)
        self.cipher = cipher
        self.encrypt_keys = frozenset(encrypt_keys)

    def _seal(self, value: Any, key: str, config: RunnableConfig, section: str) -> Any:
        if FieldCipher.should_encrypt(key, self.encrypt_keys):
            raw = json.dumps(value).encode("utf-8")
            return {ENCRYPTED_MARKER: self.cipher.encrypt_bytes(raw, _aad(config, section, key)), "__fmt__": "json"}
        if isinstance(value, dict):
            return {k: self._seal(v, k, config, section) for k, v in value.items()}
        return value

    def _open(self, value: Any, key: str, config: RunnableConfig, section: str) -> Any:
        if not isinstance(value, dict):
            return value
        if ENCRYPTED_MARKER in value:
            raw = self.cipher.decrypt_bytes(value[ENCRYPTED_MARKER], _aad(config, section, key))
            return json.loads(raw.decode("utf-8"))
        return {k: self._open(v, k, config, section) for k, v in value.items()}

    def put(
        self,
        config: RunnableConfig,
        checkpoint: Checkpoint,
        metadata: CheckpointMetadata,
        new_versions: ChannelVersions,
    ) -> RunnableConfig:
        cp = dict(checkpoint)
        cp["channel_values"] = self._seal(cp.get("channel_values", {}), "", config, CHANNEL_VALUES)
        sealed_metadata = self._seal(dict(metadata or {}), "", config, METADATA)
        return super().put(config, cp, sealed_metadata, new_versions)

    def put_writes(
        self,
        config: RunnableConfig,
        writes: Sequence[Tuple[str, Any]],
        task_id: str,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        sealed = [(channel, self._seal(value, channel, config, WRITES)) for channel, value in writes]
        return super().put_writes(config, sealed, task_id, *args, **kwargs)

    def get_tuple(self, config: RunnableConfig) -> Optional[CheckpointTuple]:
        t = super().get_tuple(config)
        if t is None:
            return None
        return self._decrypt_tuple(t)

    def list(self, config: Optional[RunnableConfig], **kwargs: Any) -> Iterator[CheckpointTuple]:
        for t in super().list(config, **kwargs):
            yield self._decrypt_tuple(t)

    def _decrypt_tuple(self, t: CheckpointTuple) -> CheckpointTuple:
        new_cp = dict(t.checkpoint)
        new_cp["channel_values"] = self._open(t.checkpoint.get("channel_values", {}), "", t.config, CHANNEL_VALUES)

        metadata = self._open(t.metadata, "", t.config, METADATA) if t.metadata is not None else None

        pending_writes = t.pending_writes
        if pending_writes is not None:
            pending_writes = [
                (task_id, channel, self._open(value, channel, t.config, WRITES))
                for task_id, channel, value in pending_writes
            ]

        return t._replace(checkpoint=new_cp, metadata=metadata, pending_writes=pending_writes)
