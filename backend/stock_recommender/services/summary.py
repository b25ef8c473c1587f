"""LLM generated market summary over the current top recommendations."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stock_recommender.analysis.recommendations import Recommendation, build_recommendations
from stock_recommender.analysis.scoring import ScoringWeights
from stock_recommender.providers.llm import LLMClient
from stock_recommender.services.store import RatingStore

logger = logging.getLogger(__name__)

SUMMARY_SAMPLE_SIZE = 50
SUMMARY_RECOMMENDATIONS = 10
SUMMARY_MAX_TOKENS = 250
EMPTY_SUMMARY = (
    "No stock recommendations available at this time. "
    "Please ensure the database contains stock ratings data."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a seasoned Wall Street equity research analyst with 15+ years of experience in "
    "fundamental analysis and market strategy. Analyze the provided stock data with the expertise "
    "of someone who has navigated multiple market cycles. Focus on: sector rotation patterns, "
    "valuation metrics implications, institutional sentiment shifts, and macroeconomic factors "
    "affecting target price revisions. Provide actionable insights for institutional investors. "
    "Keep analysis under 200 words but make every word count."
)


@dataclass(frozen=True)
class SummaryResult:
    summary: str
    tokens_used: int


def build_summary_prompt(recommendations: list[Recommendation]) -> str:
    if not recommendations:
        return "No stock recommendations available."
    lines = [
        "EQUITY RESEARCH BRIEF - Analyze the following analyst actions and provide "
        "institutional-grade market insights:",
        "",
    ]
    for position, item in enumerate(recommendations[:SUMMARY_RECOMMENDATIONS], start=1):
        lines.append(
            f"{position}. {item.company} ({item.ticker}) - {item.recommendation} [Score: {item.score:.1f}/10]"
        )
        lines.append(f"   Brokerage: {item.brokerage} | Rating: {item.current_rating} | Target: {item.target_price}")
        lines.append(f"   Catalyst: {item.reason}")
        lines.append("")
    lines.append(
        "ANALYSIS FRAMEWORK: Assess sector rotation dynamics, valuation expansion/contraction themes, "
        "earnings revision trends, and institutional positioning implications. Consider current market "
        "regime and provide tactical allocation insights."
    )
    return "\n".join(lines)


async def generate_summary(store: RatingStore, llm: LLMClient, weights: ScoringWeights) -> SummaryResult:
    events = await store.latest_events(SUMMARY_SAMPLE_SIZE)
    recommendations = build_recommendations(events, weights, SUMMARY_RECOMMENDATIONS)
    if not recommendations:
        return SummaryResult(summary=EMPTY_SUMMARY, tokens_used=0)

    completion = await llm.complete(
        [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": build_summary_prompt(recommendations)},
        ],
        max_tokens=SUMMARY_MAX_TOKENS,
        temperature=0.7,
    )
    logger.info("Generated market summary over %d recommendations", len(recommendations))
    return SummaryResult(summary=completion.text, tokens_used=completion.tokens_used)


__all__ = ["EMPTY_SUMMARY", "SummaryResult", "build_summary_prompt", "generate_summary"]
