"""
Response Assembler

Packages a synthesis and the resolved range into the final AnswerPayload.
"""

from ..common.schemas import AnswerPayload, AnswerState, TemporalRange
from .synthesizer import Synthesis


class ResponseAssembler:
    """Builds the payload returned to clients"""

    def assemble(self, query: str, synthesis: Synthesis, temporal: TemporalRange) -> AnswerPayload:
        # Actions only come out of the generative branch
        actions = synthesis.actions if synthesis.state == AnswerState.GENERAL else []
        return AnswerPayload(
            answer=synthesis.answer,
            follow_up=synthesis.follow_up,
            state=synthesis.state,
            resolved_range=temporal,
            query=query,
            evidence=list(synthesis.evidence),
            actions=list(actions),
            date_match_count=synthesis.date_matches,
        )
