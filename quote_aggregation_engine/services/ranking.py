from typing import Iterable, Iterator, Optional

from quote_aggregation_engine.models.meta_agg_models import (
    Candidate,
    QuotePerformance,
    TransactionPayload,
)


def candidate_rate(candidate: Candidate) -> float:
    if candidate.global_estimate is not None:
        return candidate.global_estimate.exchange_rate
    if candidate.steps:
        return candidate.steps[-1].estimate.exchange_rate
    return 0


def rank_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Best exchange rate first. sorted() is stable, equal rates keep dispatch order."""
    return sorted(candidates, key=candidate_rate, reverse=True)


class RankedCandidates:
    """Candidates ordered from the best to the worst exchange rate."""

    def __init__(self, candidates: Iterable[Candidate]):
        self.candidates = rank_candidates(candidates)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    def __getitem__(self, index: int) -> Candidate:
        return self.candidates[index]

    def best(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None

    def best_transaction(self) -> Optional[TransactionPayload]:
        best = self.best()
        return best.to_transaction() if best else None

    def call_data(self) -> str:
        best = self.best()
        return best.data if best else ''

    def performances(self) -> list[QuotePerformance]:
        performances = []
        for candidate in self.candidates:
            estimate = candidate.global_estimate or candidate.steps[-1].estimate
            performances.append(QuotePerformance(
                provider=candidate.provider or '',
                exchange_rate=estimate.exchange_rate,
                output=estimate.output,
                gas_cost_usd=estimate.gas_cost_usd,
                fee_cost_usd=estimate.fee_cost_usd,
                latency_ms=candidate.latency_ms,
                steps=len(candidate.steps),
                protocols=[step.protocol.name for step in candidate.steps if step.protocol],
            ))
        return performances
