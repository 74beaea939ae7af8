"""
Sink Chain

Runs persistence sinks for one record in a fixed order.

Policies:
- fail_fast:   Stop at the first failing sink; later sinks never see
               the record. This is the default.
- independent: Attempt every sink regardless of earlier failures.

Each failure is logged with the record's gateway ID, source address
and base64 payload. Failures never propagate to the caller.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple

from .base import Sink, SinkError, PacketRecord


logger = logging.getLogger("loralogger.sink.chain")


class SinkPolicy(Enum):
    """How a failing sink affects the sinks after it."""
    FAIL_FAST = "fail_fast"
    INDEPENDENT = "independent"


@dataclass
class ChainResult:
    """Outcome of writing one record through the chain."""
    written: List[str] = field(default_factory=list)
    failed: List[Tuple[str, Exception]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    
    @property
    def ok(self) -> bool:
        """True if every sink persisted the record."""
        return not self.failed and not self.skipped


class SinkChain:
    """
    Ordered list of sinks with a failure policy.
    
    Usage:
        chain = SinkChain([store_sink, log_sink], SinkPolicy.FAIL_FAST)
        result = chain.write(record)
        if not result.ok:
            ...
    """
    
    def __init__(
        self,
        sinks: Sequence[Sink],
        policy: SinkPolicy = SinkPolicy.FAIL_FAST,
    ):
        self._sinks = list(sinks)
        self._policy = policy
    
    @property
    def sinks(self) -> List[Sink]:
        return list(self._sinks)
    
    @property
    def policy(self) -> SinkPolicy:
        return self._policy
    
    def write(self, record: PacketRecord) -> ChainResult:
        """Write a record to each sink in order, applying the policy."""
        result = ChainResult()
        
        for index, sink in enumerate(self._sinks):
            try:
                sink.write(record)
            except Exception as e:
                # Traceback only for errors that are not SinkError
                logger.error(
                    f"Could not store packet in {sink.name}: {e} "
                    f"(gateway_id={record.gateway_id} addr={record.addr} "
                    f"data_base64={record.data_base64})",
                    exc_info=not isinstance(e, SinkError),
                )
                result.failed.append((sink.name, e))
                
                if self._policy is SinkPolicy.FAIL_FAST:
                    result.skipped.extend(s.name for s in self._sinks[index + 1:])
                    break
                continue
            
            result.written.append(sink.name)
        
        return result
    
    def close(self) -> None:
        """Close every sink, logging (not raising) close failures."""
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as e:
                logger.error(f"Error closing sink {sink.name}: {e}")
    
    def __len__(self) -> int:
        return len(self._sinks)
