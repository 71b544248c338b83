#!/usr/bin/env python3
"""
Headless simulation of both prize games.

Plays rounds with the real selectors against an in-memory catalog and
reports the observed win rate and how stock ran down.

Usage:
    python -m scripts.simulate_rounds --game shuffle --rounds 100000 --seed SIM_2025
    python -m scripts.simulate_rounds --game spin --rounds 50000 --probability 0.3 --out out/spin.csv
"""
import argparse
import csv
import hashlib
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from prizegame.logic.catalog import is_depleted
from prizegame.logic.models import Prize, default_shuffle_prizes, default_spin_prizes
from prizegame.logic.rng import SeededRNG
from prizegame.logic.shuffle import pick_first, pick_second, resolve
from prizegame.logic.spin import apply_spin, is_spin_depleted, select_segment


SHUFFLE_FIRST_SLOT = 0
SHUFFLE_SECOND_SLOT = 1


@dataclass
class SimulationStats:
    """Statistics accumulated during simulation."""
    game: str
    probability: float
    rounds: int = 0
    wins: int = 0
    awarded: Counter = field(default_factory=Counter)
    depleted_at_round: int | None = None
    final_amounts: dict[str, int] = field(default_factory=dict)

    @property
    def win_rate(self) -> float:
        return self.wins / self.rounds if self.rounds else 0.0


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)


def _with_stock(catalog: list[Prize], stock: int | None) -> list[Prize]:
    if stock is None:
        return catalog
    return [prize.model_copy(update={"amount": stock}) for prize in catalog]


def simulate_shuffle(
    rounds: int,
    probability: float,
    seed_str: str,
    catalog: list[Prize] | None = None,
) -> SimulationStats:
    """Play shuffle rounds until `rounds` or depletion, whichever comes first."""
    rng = SeededRNG(seed_to_int(seed_str))
    catalog = list(catalog if catalog is not None else default_shuffle_prizes())
    stats = SimulationStats(game="shuffle", probability=probability)

    for round_no in range(rounds):
        if is_depleted(catalog):
            stats.depleted_at_round = round_no
            break
        first, catalog = pick_first(catalog, SHUFFLE_FIRST_SLOT, rng)
        stats.awarded[first.prize_id] += 1
        second = pick_second(catalog, first, SHUFFLE_SECOND_SLOT, probability, rng)
        outcome = resolve(first, second)
        stats.rounds += 1
        if outcome.matched:
            stats.wins += 1

    stats.final_amounts = {prize.id: prize.amount for prize in catalog}
    return stats


def simulate_spin(
    rounds: int,
    probability: float,
    seed_str: str,
    catalog: list[Prize] | None = None,
) -> SimulationStats:
    """Spin until `rounds` or until no prize segment can be won."""
    rng = SeededRNG(seed_to_int(seed_str))
    catalog = list(catalog if catalog is not None else default_spin_prizes())
    stats = SimulationStats(game="spin", probability=probability)

    for round_no in range(rounds):
        if is_spin_depleted(catalog):
            stats.depleted_at_round = round_no
            break
        selection = select_segment(catalog, probability, rng)
        catalog = apply_spin(catalog, selection)
        stats.rounds += 1
        if selection.won:
            stats.wins += 1
            stats.awarded[selection.prize.id] += 1

    stats.final_amounts = {prize.id: prize.amount for prize in catalog}
    return stats


def write_csv(stats: SimulationStats, seed_str: str, output_path: str) -> None:
    """One row per prize plus summary columns repeated on every row."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["game", "seed", "probability", "rounds", "wins", "win_rate",
             "depleted_at_round", "prize_id", "awarded", "final_amount"]
        )
        for prize_id, amount in stats.final_amounts.items():
            writer.writerow([
                stats.game,
                seed_str,
                stats.probability,
                stats.rounds,
                stats.wins,
                f"{stats.win_rate:.6f}",
                "" if stats.depleted_at_round is None else stats.depleted_at_round,
                prize_id,
                stats.awarded.get(prize_id, 0),
                amount,
            ])


def main() -> int:
    parser = argparse.ArgumentParser(description="Simulate prize game rounds")
    parser.add_argument("--game", choices=["shuffle", "spin"], required=True)
    parser.add_argument("--rounds", type=int, default=10000)
    parser.add_argument("--seed", default="SIM_2025")
    parser.add_argument("--probability", type=float, default=0.5)
    parser.add_argument(
        "--stock", type=int, default=None,
        help="Override every prize amount (default: shipped amounts)",
    )
    parser.add_argument("--activate-all", action="store_true", help="Treat every prize as active")
    parser.add_argument("--out", default=None, help="Optional CSV output path")
    args = parser.parse_args()

    if not 0.0 <= args.probability <= 1.0:
        print("--probability must be within [0, 1]", file=sys.stderr)
        return 2

    if args.game == "shuffle":
        catalog = _with_stock(default_shuffle_prizes(), args.stock)
    else:
        catalog = _with_stock(default_spin_prizes(), args.stock)
    if args.activate_all:
        catalog = [prize.model_copy(update={"is_active": True}) for prize in catalog]

    simulate = simulate_shuffle if args.game == "shuffle" else simulate_spin
    stats = simulate(args.rounds, args.probability, args.seed, catalog)

    if args.out:
        write_csv(stats, args.seed, args.out)

    negative = {pid: amount for pid, amount in stats.final_amounts.items() if amount < 0}
    if negative:
        print(f"ASSERTION FAILED: negative stock {negative}")
        return 1

    print(f"\nSummary ({stats.game}, seed={args.seed}):")
    print(f"  Rounds played: {stats.rounds}")
    print(f"  Configured win probability: {stats.probability:.4f}")
    print(f"  Observed win rate: {stats.win_rate:.4f}")
    if stats.depleted_at_round is not None:
        print(f"  Catalog depleted at round {stats.depleted_at_round}")
    print("  Stock consumed:")
    for prize_id, amount in stats.final_amounts.items():
        print(f"    {prize_id}: awarded={stats.awarded.get(prize_id, 0)} remaining={amount}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
