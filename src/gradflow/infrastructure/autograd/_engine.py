"""
Dependency-driven backward execution engine.

A backward pass runs in three phases:

1. **Dependency counting** (`Engine.compute_dependencies`): starting from a
   synthetic `GraphRoot`, every reachable node's count is incremented once
   per incoming edge.
2. **Scheduling** (`Engine.thread_main` / `Engine.evaluate_function`): a
   node becomes ready once all of its incoming edges have delivered a
   gradient (possibly None). Ready nodes are queued by descending
   `sequence_nr`, so the most recently created node runs first.
3. **Verification**: when no task is outstanding, both the dependency table
   and the table of partially filled input buffers must be empty.

Gradients arriving at the same slot of a node (fan-in) are summed in the
node's `InputBuffer` before it runs.

Any inconsistency in the bookkeeping raises `GraphConsistencyError`; the
engine never returns partial gradients. With `EngineConfig(num_workers=N)`,
N threads cooperatively drain the same ready queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import heapq
import itertools
import logging
import threading
import weakref

from ...domain._errors import GraphConsistencyError
from ..ops import _cpu_kernels as K
from ..tensor._shape_utils import is_expandable_to
from ..tensor._tensor import Tensor
from ._grad_mode import AutoGradMode, no_grad
from ._node import Edge, GraphRoot, Node

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """
    Engine configuration.

    Attributes
    ----------
    num_workers : int
        Number of threads draining the ready queue. The calling thread is
        always one of them. Must be >= 1. Defaults to 1.
    """

    num_workers: int = 1

    def __post_init__(self) -> None:
        self.num_workers = int(self.num_workers)
        if self.num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {self.num_workers}")


class InputBuffer:
    """
    Per-node gradient slots, filled as upstream nodes deliver.

    A second delivery to an occupied slot is summed into it.
    """

    def __init__(self, size: int) -> None:
        self._buffer: List[Optional[Tensor]] = [None] * int(size)

    def add(self, pos: int, var: Optional[Tensor]) -> None:
        if var is None:
            return
        old = self._buffer[pos]
        if old is None:
            self._buffer[pos] = var
            return
        self._buffer[pos] = old + var

    def variables(self) -> List[Optional[Tensor]]:
        return list(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)


@dataclass
class NodeTask:
    """
    One unit of work: run `fn` on the gradients gathered in `inputs`.

    `graph_task` is a weak reference; a task whose graph task is gone is
    dropped by the worker that pops it.
    """

    graph_task: "weakref.ref[GraphTask]"
    fn: Node
    inputs: InputBuffer

    @property
    def sequence_nr(self) -> int:
        return self.fn.sequence_nr


class ReadyQueue:
    """
    Thread-safe priority queue of ready `NodeTask`s.

    Tasks with a higher `sequence_nr` are popped first; ties pop in push
    order. The queue tracks tasks that were popped but not yet marked
    `task_done`, so a blocking `pop` can tell "wait for a busy worker" apart
    from "nothing left to do".
    """

    def __init__(self) -> None:
        self._heap: List[tuple[int, int, NodeTask]] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._in_flight = 0
        self._closed = False

    def push(self, task: NodeTask) -> None:
        with self._cond:
            heapq.heappush(self._heap, (-task.sequence_nr, next(self._counter), task))
            self._cond.notify()

    def pop(self, block: bool = True) -> Optional[NodeTask]:
        """
        Remove and return the highest-priority task.

        Returns None if the queue is closed, or if it is empty and either
        `block` is False or no popped task is still in flight.
        """
        with self._cond:
            while True:
                if self._closed:
                    return None
                if self._heap:
                    _, _, task = heapq.heappop(self._heap)
                    self._in_flight += 1
                    return task
                if not block or self._in_flight == 0:
                    return None
                self._cond.wait()

    def task_done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def empty(self) -> bool:
        with self._cond:
            return not self._heap

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)


class GraphTask:
    """
    State of one backward invocation.

    Attributes
    ----------
    keep_graph : bool
        Keep saved tensors after each node runs.
    grad_mode : bool
        Grad mode under which nodes are applied (True for `create_graph`).
    ready_queue : ReadyQueue
        Queue shared by the workers of this invocation.
    dependencies : dict[Node, int]
        Remaining incoming edges per node not yet ready.
    not_ready : dict[Node, InputBuffer]
        Partially filled input buffers.
    outstanding_tasks : int
        Tasks pushed but not yet finished.
    exception : Optional[BaseException]
        First error raised by a worker.
    """

    def __init__(self, keep_graph: bool, grad_mode: bool, ready_queue: ReadyQueue) -> None:
        self.keep_graph = bool(keep_graph)
        self.grad_mode = bool(grad_mode)
        self.ready_queue = ready_queue
        self.dependencies: Dict[Node, int] = {}
        self.not_ready: Dict[Node, InputBuffer] = {}
        self.outstanding_tasks = 0
        self.lock = threading.Lock()
        self.exception: Optional[BaseException] = None

    def completed(self) -> bool:
        return self.outstanding_tasks == 0 or self.exception is not None

    def set_exception(self, exc: BaseException) -> None:
        with self.lock:
            if self.exception is None:
                self.exception = exc
        self.ready_queue.close()


def _validate_output(fn: Node, edge: Edge, grad: Tensor) -> Tensor:
    """
    Check a produced gradient against the metadata of the slot it feeds.

    A gradient that broadcasts to the expected shape is summed down to it;
    a dtype mismatch is cast.
    """
    target = edge.function
    if edge.input_nr >= target.num_inputs():
        raise GraphConsistencyError(
            f"edge points at slot {edge.input_nr} but {target.name()} has "
            f"{target.num_inputs()} input(s)",
            node=fn.name(),
        )
    meta = target.input_metadata[edge.input_nr]
    if tuple(grad.shape) != meta.shape:
        if not is_expandable_to(meta.shape, grad.shape):
            raise GraphConsistencyError(
                f"gradient of shape {tuple(grad.shape)} does not match the "
                f"expected shape {meta.shape} of {target.name()}",
                node=fn.name(),
            )
        summed = K.sum_to_shape(grad.impl.data_view(), meta.shape)
        grad = Tensor._from_array(summed, dtype=meta.dtype, device=meta.device)
    if grad.dtype != meta.dtype:
        grad = Tensor._from_array(grad.impl.data_view(), dtype=meta.dtype, device=meta.device)
    if grad.device != meta.device:
        raise GraphConsistencyError(
            f"gradient on {grad.device} delivered to {target.name()} expecting {meta.device}",
            node=fn.name(),
        )
    return grad


class Engine:
    """
    Backward executor.

    Parameters
    ----------
    config : EngineConfig, optional
        Worker configuration. Defaults to a single worker.
    """

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or EngineConfig()

    # ------------------------------------------------------------------
    # Phase 1: dependencies
    # ------------------------------------------------------------------
    def compute_dependencies(self, root: Node, graph_task: GraphTask) -> None:
        """
        Count, for every node reachable from `root`, its incoming edges.

        Each node is traversed once; its count is incremented once per edge
        that points to it.
        """
        dependencies = graph_task.dependencies
        seen = {root}
        stack = [root]
        while stack:
            fn = stack.pop()
            for edge in fn.next_edges:
                nxt = edge.function
                if nxt is None:
                    continue
                dependencies[nxt] = dependencies.get(nxt, 0) + 1
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        logger.debug(
            "computed dependencies for %d node(s) reachable from %s",
            len(dependencies),
            root.name(),
        )

    # ------------------------------------------------------------------
    # Phase 2: evaluation
    # ------------------------------------------------------------------
    def call_function(
        self, graph_task: GraphTask, fn: Node, inputs: InputBuffer
    ) -> List[Optional[Tensor]]:
        grads = inputs.variables()
        if grads and all(g is None for g in grads):
            outputs: List[Optional[Tensor]] = [None] * fn.num_outputs()
        else:
            with AutoGradMode(graph_task.grad_mode):
                outputs = fn(grads)
        if len(outputs) != fn.num_outputs():
            raise GraphConsistencyError(
                f"function returned {len(outputs)} gradient(s), "
                f"expected {fn.num_outputs()}",
                node=fn.name(),
            )
        if not graph_task.keep_graph:
            fn.release_variables()
        return outputs

    def evaluate_function(
        self, graph_task: GraphTask, fn: Node, inputs: InputBuffer
    ) -> None:
        """
        Run `fn` and route its gradients to the nodes its edges point at.

        A target whose dependency count reaches zero is pushed onto the ready
        queue with its completed input buffer.

        Raises
        ------
        GraphConsistencyError
            If a target has no dependency entry, its count would drop below
            zero, or `fn` returns the wrong number of gradients.
        """
        outputs = self.call_function(graph_task, fn, inputs)

        validated: List[Optional[Tensor]] = []
        with no_grad():
            for i, output in enumerate(outputs):
                edge = fn.next_edges[i]
                if output is not None and edge.is_valid():
                    output = _validate_output(fn, edge, output)
                validated.append(output)

        with graph_task.lock:
            for i, output in enumerate(validated):
                edge = fn.next_edges[i]
                nxt = edge.function
                if nxt is None:
                    continue
                if nxt not in graph_task.dependencies:
                    raise GraphConsistencyError(
                        "dependency not found for a node that receives a gradient",
                        node=nxt.name(),
                    )
                remaining = graph_task.dependencies[nxt] - 1
                if remaining < 0:
                    raise GraphConsistencyError(
                        "dependency count dropped below zero", node=nxt.name()
                    )

                buffer = graph_task.not_ready.get(nxt)
                if buffer is None:
                    buffer = InputBuffer(nxt.num_inputs())
                buffer.add(edge.input_nr, output)

                if remaining == 0:
                    del graph_task.dependencies[nxt]
                    graph_task.not_ready.pop(nxt, None)
                    graph_task.outstanding_tasks += 1
                    graph_task.ready_queue.push(
                        NodeTask(weakref.ref(graph_task), nxt, buffer)
                    )
                else:
                    graph_task.dependencies[nxt] = remaining
                    graph_task.not_ready[nxt] = buffer

    def thread_main(self, graph_task: GraphTask, block: bool = True) -> None:
        """
        Drain the ready queue until `graph_task` completes.

        Raises
        ------
        GraphConsistencyError
            If the queue runs dry while tasks are outstanding, or if
            dependencies or input buffers remain after completion.
        """
        queue = graph_task.ready_queue
        while not graph_task.completed():
            task = queue.pop(block)
            if task is None:
                if graph_task.completed():
                    break
                raise GraphConsistencyError(
                    f"ready queue drained with {graph_task.outstanding_tasks} "
                    "task(s) still outstanding"
                )
            try:
                owner = task.graph_task()
                if owner is None or owner.exception is not None:
                    continue
                try:
                    self.evaluate_function(owner, task.fn, task.inputs)
                except Exception as exc:
                    owner.set_exception(exc)
                with owner.lock:
                    owner.outstanding_tasks -= 1
                    logger.debug(
                        "finished %s, %d task(s) outstanding",
                        task.fn.name(),
                        owner.outstanding_tasks,
                    )
            finally:
                queue.task_done()

        if graph_task.exception is None:
            with graph_task.lock:
                pending = len(queue)
                if graph_task.dependencies or graph_task.not_ready or pending:
                    raise GraphConsistencyError(
                        f"backward finished with {len(graph_task.dependencies)} "
                        f"unresolved dependenc(ies), {len(graph_task.not_ready)} "
                        f"pending input buffer(s) and {pending} queued task(s)"
                    )

    def _worker_main(self, graph_task: GraphTask) -> None:
        try:
            self.thread_main(graph_task, block=True)
        except Exception as exc:
            graph_task.set_exception(exc)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def execute(
        self,
        roots: Sequence[Edge],
        inputs: Sequence[Optional[Tensor]],
        keep_graph: bool,
        create_graph: bool,
    ) -> GraphTask:
        """
        Run backward from `roots`, seeding them with `inputs`.

        Parameters
        ----------
        roots : Sequence[Edge]
            Gradient edges of the tensors backward starts from.
        inputs : Sequence[Optional[Tensor]]
            Seed gradient for each root.
        keep_graph : bool
            Keep saved tensors for another backward pass.
        create_graph : bool
            Apply nodes with grad mode enabled.

        Returns
        -------
        GraphTask
            The finished task; `outstanding_tasks` is 0.

        Raises
        ------
        GraphConsistencyError
            On any scheduling inconsistency.
        Exception
            The first exception raised by a backward node, re-raised.
        """
        if len(roots) != len(inputs):
            raise ValueError(
                f"got {len(roots)} root(s) but {len(inputs)} seed gradient(s)"
            )
        graph_task = GraphTask(keep_graph, create_graph, ReadyQueue())
        graph_root = GraphRoot(roots, inputs)
        self.compute_dependencies(graph_root, graph_task)

        graph_task.outstanding_tasks = 1
        graph_task.ready_queue.push(
            NodeTask(weakref.ref(graph_task), graph_root, InputBuffer(0))
        )

        workers = [
            threading.Thread(
                target=self._worker_main,
                args=(graph_task,),
                name=f"gradflow-backward-{i}",
                daemon=True,
            )
            for i in range(1, self.config.num_workers)
        ]
        for w in workers:
            w.start()
        self._worker_main(graph_task)
        for w in workers:
            w.join()

        if graph_task.exception is not None:
            raise graph_task.exception
        return graph_task


_default_engine: Optional[Engine] = None
_default_engine_lock = threading.Lock()


def get_default_engine() -> Engine:
    """
    Return the process-wide engine, creating it on first use.
    """
    global _default_engine
    with _default_engine_lock:
        if _default_engine is None:
            _default_engine = Engine()
        return _default_engine


def set_default_engine(engine: Engine) -> Engine:
    """
    Replace the process-wide engine and return the previous one.
    """
    global _default_engine
    with _default_engine_lock:
        previous = _default_engine or Engine()
        _default_engine = engine
        return previous
