"""
Trace Folder boundary.

A folder consumes the satisfied frame instances of one trace, in order, and
produces a proof that the initial state reaches the final state in
`step_count` steps. Succinct folding schemes live outside this package and
implement TraceFolder; ReceiptChainFolder is a non-succinct reference that
checks every instance itself and chains their public I/O:

    c_0     = H(INIT ‖ shape ‖ C(initial))
    c_{i+1} = H(STEP ‖ c_i ‖ C(in_i) ‖ C(out_i))

where C is `state_commitment` and shape the circuit layout digest.
Verification re-checks every instance, then replays the chain.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple, Union

from lurk_spec.circuit.frame_circuit import synthesize_trace
from lurk_spec.circuit.system import ConstraintSystem
from lurk_spec.config import DEFAULT_CONFIG, EvalConfig
from lurk_spec.errors import TraceContiguityError, UnsatisfiedStepError
from lurk_spec.evaluator.evaluate import Evaluation
from lurk_spec.evaluator.frame import STATE_SIZE, Frame, State
from lurk_spec.primitives.field import pack_bytes
from lurk_spec.primitives.poseidon2 import hash_elements

logger = logging.getLogger(__name__)

Commitment = Tuple[int, ...]


class Domain(IntEnum):
    """Domain separation tags, disjoint from node tags."""
    STATE = 0x60
    INIT = 0x61
    STEP = 0x62


def state_commitment(state: Union[State, Sequence[int]]) -> Commitment:
    """Commit to a state, given as a State or its 15 field elements."""
    elements = state.elements() if isinstance(state, State) else tuple(state)
    if len(elements) != STATE_SIZE:
        raise ValueError(f"a state has {STATE_SIZE} elements, got {len(elements)}")
    return hash_elements([Domain.STATE, *elements])


# --- Bundling ---


@dataclass(frozen=True)
class StepInstance:
    """Frame circuit of one step, with its public I/O split out."""
    index: int
    system: ConstraintSystem
    public_inputs: Tuple[int, ...]
    public_outputs: Tuple[int, ...]

    @property
    def input_commitment(self) -> Commitment:
        return state_commitment(self.public_inputs)

    @property
    def output_commitment(self) -> Commitment:
        return state_commitment(self.public_outputs)


@dataclass(frozen=True)
class TraceBundle:
    """
    Everything a folder needs for one trace.

    Attributes:
        instances: One instance per frame, in trace order (padding included)
        initial_commitment: Commitment to the state the trace starts from
        final_commitment: Commitment to the state the trace ends in
        step_count: Number of frames that are not identity padding
    """
    instances: Tuple[StepInstance, ...]
    initial_commitment: Commitment
    final_commitment: Commitment
    step_count: int


def check_contiguity(frames: Sequence[Frame], initial: Optional[State] = None) -> None:
    """Raise TraceContiguityError unless each frame starts where the previous ended."""
    previous = initial
    for i, frame in enumerate(frames):
        if previous is not None and frame.input != previous:
            raise TraceContiguityError(f"frame {i} does not start where frame {i - 1} ended")
        previous = frame.output


def bundle_trace(
    trace: Union[Evaluation, Sequence[Frame]],
    config: EvalConfig = DEFAULT_CONFIG,
    max_workers: Optional[int] = None,
) -> TraceBundle:
    """
    Synthesize a trace and package it for folding.

    Args:
        trace: An Evaluation, or a non-empty frame sequence (possibly padded)
        config: Config the trace was evaluated with
        max_workers: Synthesis thread pool size

    Returns:
        TraceBundle; step_count and the final commitment ignore trailing
        identity frames
    """
    if isinstance(trace, Evaluation):
        frames, initial = list(trace.frames), trace.initial
    else:
        frames = list(trace)
        if not frames:
            raise ValueError("an empty frame sequence has no initial state")
        initial = frames[0].input
    check_contiguity(frames, initial)

    systems = synthesize_trace(frames, config, max_workers)
    instances = tuple(
        StepInstance(
            index=i,
            system=cs,
            public_inputs=tuple(cs.public_values()[:STATE_SIZE]),
            public_outputs=tuple(cs.public_values()[STATE_SIZE:]),
        )
        for i, cs in enumerate(systems)
    )
    step_count = sum(1 for frame in frames if not frame.is_identity)
    final = frames[-1].output if frames else initial

    return TraceBundle(
        instances=instances,
        initial_commitment=state_commitment(initial),
        final_commitment=state_commitment(final),
        step_count=step_count,
    )


# --- Folding ---


class TraceFolder(ABC):
    """Consumes step instances in trace order."""

    @abstractmethod
    def fold(self, bundle: TraceBundle):
        """Fold every instance of the bundle into one proof."""
        pass

    @abstractmethod
    def verify(self, proof, initial: Commitment, final: Commitment, step_count: int) -> bool:
        """Check that `proof` takes `initial` to `final` in `step_count` steps."""
        pass


Link = Tuple[Commitment, Commitment]


@dataclass(frozen=True)
class ReceiptChainProof:
    """
    Attributes:
        shape: Constraint layout digest shared by every instance
        links: (input, output) commitment of each instance, in order
        step_count: Non-padding steps among the links
        receipt: Last element of the receipt chain
        systems: The instances themselves, re-checked by verify
    """
    shape: str
    links: Tuple[Link, ...]
    step_count: int
    receipt: Commitment
    systems: Tuple[ConstraintSystem, ...]


def _io_link(cs: ConstraintSystem) -> Link:
    public = cs.public_values()
    return state_commitment(public[:STATE_SIZE]), state_commitment(public[STATE_SIZE:])


def _receipt_chain(shape: str, initial: Commitment, links: Sequence[Link]) -> List[Commitment]:
    chain = [hash_elements([Domain.INIT, *pack_bytes(bytes.fromhex(shape)), *initial])]
    for commit_in, commit_out in links:
        chain.append(hash_elements([Domain.STEP, *chain[-1], *commit_in, *commit_out]))
    return chain


class ReceiptChainFolder(TraceFolder):
    """Reference folder: checks each instance and hash-chains the trace.

    The proof is not succinct: it carries every instance, and `verify`
    checks them all again before replaying the chain.
    """

    def fold(self, bundle: TraceBundle) -> ReceiptChainProof:
        """
        Raises:
            UnsatisfiedStepError: an instance is unsatisfied, or its shape
                differs from the first instance's
            TraceContiguityError: instances do not link up
        """
        shape = None
        links = []
        previous = bundle.initial_commitment
        for instance in bundle.instances:
            failing = instance.system.unsatisfied_constraints()
            if failing:
                index, label = failing[0]
                raise UnsatisfiedStepError(
                    f"step {instance.index}: constraint {index} ({label}) fails, "
                    f"{len(failing)} in total")
            digest = instance.system.shape_digest()
            if shape is None:
                shape = digest
            elif digest != shape:
                raise UnsatisfiedStepError(f"step {instance.index} has a different circuit shape")

            commit_in, commit_out = instance.input_commitment, instance.output_commitment
            if commit_in != previous:
                raise TraceContiguityError(f"step {instance.index} does not continue the trace")
            links.append((commit_in, commit_out))
            previous = commit_out

        if previous != bundle.final_commitment:
            raise TraceContiguityError("last instance does not end in the final state")

        shape = shape or ""
        chain = _receipt_chain(shape, bundle.initial_commitment, links)
        logger.info("folded %d instances (%d steps)", len(links), bundle.step_count)
        return ReceiptChainProof(
            shape=shape,
            links=tuple(links),
            step_count=bundle.step_count,
            receipt=chain[-1],
            systems=tuple(instance.system for instance in bundle.instances),
        )

    def verify(self, proof: ReceiptChainProof, initial: Commitment, final: Commitment,
               step_count: int) -> bool:
        if proof.step_count != step_count or step_count > len(proof.links):
            return False

        # Every link must come from a satisfied instance of the proof's shape
        if len(proof.systems) != len(proof.links):
            return False
        for cs, link in zip(proof.systems, proof.links):
            if cs.shape_digest() != proof.shape or _io_link(cs) != link or not cs.is_satisfied():
                return False

        previous = initial
        for commit_in, commit_out in proof.links:
            if commit_in != previous:
                return False
            previous = commit_out
        if previous != final:
            return False

        # Links past step_count are identity padding
        if any(commit_in != commit_out for commit_in, commit_out in proof.links[step_count:]):
            return False

        return _receipt_chain(proof.shape, initial, proof.links)[-1] == proof.receipt
