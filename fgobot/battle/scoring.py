"""指令卡组合评分。

枚举所有 3 卡组合并打分::

    得分 = Σ 效果系数
         + Brave 链加成 (三张同一从者)
         + 同色链加成 (三张同一类型)
         + 目标倾向加成 (由会话目标决定)

各项加成相互独立、可以叠加。得分严格更高才会替换当前最优，
因此同分时保留最先生成的组合（按编号升序枚举）。
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from itertools import combinations

from fgobot.battle.context import CardInfo
from fgobot.types import BattleObjective, CardType

BRAVE_BONUS = 1.4
"""Brave 链加成。"""

FOCUS_WEIGHT = 0.5
"""刷本 / 高难目标下每张倾向色卡的加成。"""

VARIETY_WEIGHT = 0.2
"""其他目标下每种不同卡色的加成。"""

CHAIN_SIZE = 3


@dataclass(frozen=True, slots=True)
class ScoredCombination:
    """一个已打分的 3 卡组合。"""

    cards: tuple[CardInfo, CardInfo, CardInfo]
    score: float
    brave: bool
    color: CardType | None

    @property
    def indices(self) -> tuple[int, int, int]:
        return tuple(c.index for c in self.cards)  # type: ignore[return-value]


def generate_combinations(cards: Sequence[CardInfo]) -> Iterator[tuple[CardInfo, ...]]:
    """按编号升序生成全部 C(n, 3) 组合。"""
    ordered = sorted(cards, key=lambda c: c.index)
    return combinations(ordered, CHAIN_SIZE)


def is_brave_chain(combo: Sequence[CardInfo]) -> bool:
    return len({c.servant_index for c in combo}) == 1


def chain_color(combo: Sequence[CardInfo]) -> CardType | None:
    """同色链的卡色，非同色链返回 ``None``。"""
    types = {c.type for c in combo}
    return next(iter(types)) if len(types) == 1 else None


def chain_score(combo: Sequence[CardInfo]) -> float:
    """效果系数之和加上链加成（不含目标倾向）。"""
    score = sum(c.effectiveness for c in combo)
    if is_brave_chain(combo):
        score += BRAVE_BONUS
    color = chain_color(combo)
    if color is not None:
        score += color.chain_bonus
    return score


def objective_bonus(combo: Sequence[CardInfo], objective: BattleObjective) -> float:
    """目标倾向加成：刷本偏 Buster，高难偏 Arts，其余鼓励卡色多样。"""
    match objective:
        case BattleObjective.FARMING:
            return FOCUS_WEIGHT * sum(1 for c in combo if c.type == CardType.BUSTER)
        case BattleObjective.CHALLENGE:
            return FOCUS_WEIGHT * sum(1 for c in combo if c.type == CardType.ARTS)
        case _:
            return VARIETY_WEIGHT * len({c.type for c in combo})


def score_combination(combo: Sequence[CardInfo], objective: BattleObjective) -> float:
    return chain_score(combo) + objective_bonus(combo, objective)


def select_best(
    cards: Sequence[CardInfo],
    objective: BattleObjective,
) -> ScoredCombination | None:
    """返回得分最高的组合；不足 3 张时返回 ``None``。"""
    best: ScoredCombination | None = None
    for combo in generate_combinations(cards):
        score = score_combination(combo, objective)
        if best is None or score > best.score:
            best = ScoredCombination(
                cards=combo,  # type: ignore[arg-type]
                score=score,
                brave=is_brave_chain(combo),
                color=chain_color(combo),
            )
    return best


def build_reasoning(best: ScoredCombination) -> str:
    """按 Brave → 同色 → 集中 → 均衡 的顺序生成出卡说明。"""
    parts: list[str] = []
    if best.brave:
        parts.append(f"Brave 链 (从者{best.cards[0].servant_index + 1})")
    if best.color is not None:
        parts.append(f"{best.color.value} 链")
    if not parts:
        counts: dict[CardType, int] = {}
        for c in best.cards:
            counts[c.type] = counts.get(c.type, 0) + 1
        dominant, count = max(counts.items(), key=lambda kv: kv[1])
        if count >= 2:
            parts.append(f"{dominant.value} 集中")
        else:
            parts.append("均衡出卡")
    return f"{' + '.join(parts)}，得分 {best.score:.2f}"
