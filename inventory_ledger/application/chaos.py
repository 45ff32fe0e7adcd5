"""
Fault-injection harness

Every ledger-facing operation calls ``inject_all(operation)`` before touching
the store. Each fault is toggled by its own flag, and flags are read from the
flag source on every call so an operator can switch faults on and off against
a running instance.

Order inside ``inject_all``: latency, expensive-read check, memory pressure,
CPU burn, store failure, forced failure. The first fault that raises stops the
sequence and the error propagates to the caller.
"""

import math
import random
import threading
import time
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from inventory_ledger.core import get_logger, operation_context
from inventory_ledger.domain.errors import InjectedFailure, StoreUnavailable
from inventory_ledger.infrastructure.flags import FlagSource

logger = get_logger(__name__)

FLAG_SERVICE_FAILURE = "inventoryServiceFailure"
FLAG_LATENCY_MS = "inventoryServiceLatency"
FLAG_DATABASE_FAILURE = "inventoryDatabaseFailure"
FLAG_SLOW_QUERY = "inventorySlowQuery"
FLAG_MEMORY_LEAK = "inventoryMemoryLeak"
FLAG_HIGH_CPU = "inventoryHighCpu"

ONE_MIB = 1024 * 1024


@dataclass(frozen=True)
class ChaosStatus:
    service_failure_enabled: bool
    latency_injection_ms: int
    database_failure_enabled: bool
    slow_query_enabled: bool
    memory_leak_enabled: bool
    high_cpu_enabled: bool
    memory_leak_blocks: int
    memory_leak_bytes: int

    def to_dict(self) -> dict:
        return asdict(self)


class MemoryPressure:
    """Retained allocations; grows until ``clear`` is called"""

    def __init__(self, block_bytes: int = ONE_MIB):
        self.block_bytes = block_bytes
        self._lock = threading.Lock()
        self._blocks: List[bytearray] = []

    def append(self) -> int:
        block = bytearray(self.block_bytes)
        with self._lock:
            self._blocks.append(block)
            return len(self._blocks)

    def clear(self) -> int:
        with self._lock:
            freed = len(self._blocks)
            self._blocks.clear()
            return freed

    def size(self) -> int:
        with self._lock:
            return len(self._blocks)

    def total_bytes(self) -> int:
        with self._lock:
            return sum(len(b) for b in self._blocks)


class ChaosHarness:
    def __init__(
        self,
        flags: FlagSource,
        memory_block_bytes: int = ONE_MIB,
        cpu_burn_ms: Tuple[int, int] = (1000, 3000),
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.flags = flags
        self.memory_pressure = MemoryPressure(memory_block_bytes)
        self.cpu_burn_ms = cpu_burn_ms
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.last_cpu_result: Optional[float] = None

    def inject_latency(self, operation: str) -> int:
        latency_ms = self.flags.get_int(FLAG_LATENCY_MS, 0)
        if latency_ms <= 0:
            return 0
        logger.warning(
            f"Latency injection enabled - operation: {operation}, delay: {latency_ms}ms",
            extra={'extra_fields': {'chaos.latency_ms': latency_ms, 'chaos.operation': operation}},
        )
        self._sleep(latency_ms / 1000.0)
        return latency_ms

    def inject_slow_query(self, operation: str) -> bool:
        """Only reports the flag; read paths run the analyses themselves"""
        enabled = self.should_run_expensive_reads()
        if enabled:
            logger.warning(
                f"Slow query injection enabled - operation: {operation}",
                extra={'extra_fields': {'chaos.slow_query_injection': True, 'chaos.operation': operation}},
            )
        return enabled

    def should_run_expensive_reads(self) -> bool:
        return self.flags.get_bool(FLAG_SLOW_QUERY, False)

    def run_expensive_reads(self, operation: str, queries: Iterable[Callable[[], Sequence]]) -> int:
        """Run heavy analyses when the slow-query flag is on.

        Results are discarded; only duration and row counts are logged. A
        failing analysis is logged and never aborts the enclosing operation.
        Returns the number of rows observed.
        """
        if not self.should_run_expensive_reads():
            return 0
        rows = 0
        start = time.perf_counter()
        try:
            for query in queries:
                rows += len(query())
        except Exception as e:
            logger.error(
                f"Slow query execution failed - operation: {operation}: {e}",
                exc_info=True,
                extra={'extra_fields': {'chaos.slow_query_error': str(e), 'chaos.operation': operation}},
            )
        logger.warning(
            f"Slow query finished - operation: {operation}, rows: {rows}",
            extra={
                'duration': time.perf_counter() - start,
                'extra_fields': {'chaos.slow_query_rows': rows, 'chaos.operation': operation},
            },
        )
        return rows

    def inject_memory_pressure(self, operation: str) -> int:
        if not self.flags.get_bool(FLAG_MEMORY_LEAK, False):
            return 0
        blocks = self.memory_pressure.append()
        logger.warning(
            f"Memory pressure injection enabled - operation: {operation}, retained blocks: {blocks}",
            extra={'extra_fields': {
                'chaos.memory_leak_blocks': blocks,
                'chaos.memory_leak_bytes': blocks * self.memory_pressure.block_bytes,
                'chaos.operation': operation,
            }},
        )
        return blocks

    def inject_cpu_burn(self, operation: str) -> Optional[float]:
        if not self.flags.get_bool(FLAG_HIGH_CPU, False):
            return None
        low, high = self.cpu_burn_ms
        burn_ms = self._rng.randint(low, high)
        logger.warning(
            f"CPU burn injection enabled - operation: {operation}, duration: {burn_ms}ms",
            extra={'extra_fields': {'chaos.high_cpu_ms': burn_ms, 'chaos.operation': operation}},
        )
        deadline = time.perf_counter() + burn_ms / 1000.0
        result = 0.0
        while time.perf_counter() < deadline:
            result += math.sqrt(self._rng.random())
        # Keep the value so the loop has an observable result
        self.last_cpu_result = result
        return result

    def inject_store_failure(self, operation: str) -> None:
        if self.flags.get_bool(FLAG_DATABASE_FAILURE, False):
            logger.error(
                f"Database failure injection enabled - operation: {operation}",
                extra={'extra_fields': {'chaos.database_failure_injection': True, 'chaos.operation': operation}},
            )
            raise StoreUnavailable(f"Database connection failed: {operation}", operation=operation)

    def inject_failure(self, operation: str) -> None:
        if self.flags.get_bool(FLAG_SERVICE_FAILURE, False):
            logger.warning(
                f"Failure injection enabled - operation: {operation}",
                extra={'extra_fields': {'chaos.failure_injection': True, 'chaos.operation': operation}},
            )
            raise InjectedFailure(f"Injected failure: {operation} failed", operation=operation)

    def inject_all(self, operation: str) -> None:
        with operation_context(operation):
            try:
                self.inject_latency(operation)
                self.inject_slow_query(operation)
                self.inject_memory_pressure(operation)
                self.inject_cpu_burn(operation)
                self.inject_store_failure(operation)
                self.inject_failure(operation)
            except Exception as e:
                logger.error(
                    f"Fault injection raised - operation: {operation}: {e}",
                    extra={'extra_fields': {'chaos.injection_error': type(e).__name__}},
                )
                raise

    def status(self) -> ChaosStatus:
        return ChaosStatus(
            service_failure_enabled=self.flags.get_bool(FLAG_SERVICE_FAILURE, False),
            latency_injection_ms=self.flags.get_int(FLAG_LATENCY_MS, 0),
            database_failure_enabled=self.flags.get_bool(FLAG_DATABASE_FAILURE, False),
            slow_query_enabled=self.flags.get_bool(FLAG_SLOW_QUERY, False),
            memory_leak_enabled=self.flags.get_bool(FLAG_MEMORY_LEAK, False),
            high_cpu_enabled=self.flags.get_bool(FLAG_HIGH_CPU, False),
            memory_leak_blocks=self.memory_pressure.size(),
            memory_leak_bytes=self.memory_pressure.total_bytes(),
        )

    def cleanup(self) -> int:
        freed = self.memory_pressure.clear()
        logger.info(
            f"Memory pressure cleanup finished, released {freed} block(s)",
            extra={'extra_fields': {'chaos.memory_cleanup_blocks': freed}},
        )
        return freed
