#!/usr/bin/env python3
"""
Experiment Runner for the Data-Center Stackelberg Game

Usage:
    # Default configuration, full five-step report
    python experiments/run_experiment.py

    # Experiment config with overrides
    python experiments/run_experiment.py --config failure_injection --strategy "QoS Focused"

    # Step through the protocol one report at a time
    python experiments/run_experiment.py --step

    # Every strategy x algorithm pair listed in the config's sweep section
    python experiments/run_experiment.py --config strategy_comparison --sweep
"""

import argparse
import itertools
import logging
import sys
from pathlib import Path
from typing import Dict, Any, List

# Get the project root directory (parent of experiments/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Add project root to path for imports
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tqdm import tqdm

from dcgame.config import SimulationConfig, load_config
from dcgame.game import StackelbergGame
from dcgame.utils.logger import setup_logger, ProgressLogger
from dcgame.utils.results import ExperimentTracker, ResultManager
from dcgame.utils.seed import set_seed


def resolve_config_path(name: str) -> Path:
    """Map an experiment name or a file path to a YAML file."""
    candidate = Path(name)
    if candidate.suffix in (".yaml", ".yml") and candidate.exists():
        return candidate

    config_dir = PROJECT_ROOT / 'config'
    for path in (config_dir / 'experiments' / f'{name}.yaml', config_dir / f'{name}.yaml'):
        if path.exists():
            return path

    # Fall back to the default config
    return config_dir / 'default.yaml'


def run_name_for(config: SimulationConfig) -> str:
    """File-system friendly run name, e.g. ``Energy-Efficient_Best-Response``."""
    strategy = config.leader_strategy.value.replace(" ", "-")
    algorithm = config.allocation_algorithm.value.replace(" ", "-")
    return f"{strategy}_{algorithm}"


def run_single(
    config: SimulationConfig,
    exp_name: str,
    log_dir: str,
    save: bool = True,
    quiet: bool = False,
    results_dir: str = "results"
):
    """Run one game and print its reports."""
    run_name = run_name_for(config)
    logger = setup_logger(run_name, log_dir=log_dir, console=not quiet)
    progress = ProgressLogger(logger, config.iterations, log_every=max(config.iterations // 5, 1))

    logger.info(
        f"Starting run: {config.n_servers} servers ({config.server_mix.value}), "
        f"{config.n_followers} schedulers, {config.load_pattern.value} load"
    )

    game = StackelbergGame(config)
    result = game.run(progress=progress)

    if not quiet:
        print(result.full_report())

    if save:
        tracker = ExperimentTracker(exp_name, run_name, config.to_dict(), base_dir=results_dir)
        previous = tracker.result_manager.get_latest_result(exp_name, run_name)
        tracker.log_game_result(result)
        filepath = tracker.save()
        logger.info(f"Results saved to: {filepath}")
        if previous is not None:
            prev_welfare = previous["results"]["metrics"]["social_welfare"]
            logger.info(
                f"Social welfare vs previous run {previous['metadata']['run_id']}: "
                f"${prev_welfare:.2f} -> ${result.metrics['social_welfare']:.2f}"
            )
        if not quiet:
            tracker.print_summary()

    return result


def run_steps(config: SimulationConfig):
    """Print one step report per Enter key press."""
    game = StackelbergGame(config)
    for report in game.steps():
        print(report.text)
        print()
        try:
            input("[Enter] next step ")
        except EOFError:
            pass


def run_sweep(
    base_config: SimulationConfig,
    sweep: Dict[str, Any],
    exp_name: str,
    save: bool = True,
    results_dir: str = "results"
) -> List[Dict[str, Any]]:
    """Run every strategy x algorithm pair and print a comparison table."""
    strategies = sweep.get('leader_strategies', [base_config.leader_strategy.value])
    algorithms = sweep.get('allocation_algorithms', [base_config.allocation_algorithm.value])

    rows = []
    pairs = list(itertools.product(strategies, algorithms))
    for strategy, algorithm in tqdm(pairs, desc="Sweep"):
        config = base_config.replace(leader_strategy=strategy, allocation_algorithm=algorithm)
        result = StackelbergGame(config).run()

        rows.append({
            "strategy": config.leader_strategy.value,
            "algorithm": config.allocation_algorithm.value,
            "equilibrium": result.equilibrium,
            "active": result.metrics["active_servers"],
            "welfare": result.metrics["social_welfare"],
            "profit": result.metrics["profit"],
            "energy": result.metrics["total_energy"],
        })

        if save:
            tracker = ExperimentTracker(exp_name, run_name_for(config), config.to_dict(),
                                        base_dir=results_dir)
            tracker.log_game_result(result)
            tracker.save()

    print(f"\n{'strategy':<18s} {'algorithm':<18s} {'NE':>3s} {'active':>6s} "
          f"{'welfare':>10s} {'profit':>10s} {'energy W':>10s}")
    print('-' * 80)
    for row in rows:
        print(f"{row['strategy']:<18s} {row['algorithm']:<18s} "
              f"{'yes' if row['equilibrium'] else 'no':>3s} {row['active']:>6d} "
              f"{row['welfare']:>10.2f} {row['profit']:>10.2f} {row['energy']:>10.2f}")

    if save:
        # Latest saved file per run name, including runs from earlier sweeps
        latest = ResultManager(results_dir).compare_results(exp_name)
        print(f"\nLatest social welfare in '{exp_name}':")
        for name, welfare in sorted(latest.items()):
            print(f"  {name:<40s} {welfare:>10.2f}")

    return rows


def main():
    parser = argparse.ArgumentParser(description='Data-Center Stackelberg Game Runner')
    parser.add_argument('--config', type=str, default='default',
                        help='Experiment config name (e.g., strategy_comparison) or YAML path')
    parser.add_argument('--strategy', type=str, default=None,
                        help='Override leader strategy (e.g., "Adaptive")')
    parser.add_argument('--algorithm', type=str, default=None,
                        help='Override allocation algorithm (e.g., "Water Filling")')
    parser.add_argument('--iterations', type=int, default=None,
                        help='Override number of best-response iterations')
    parser.add_argument('--seed', type=int, default=None,
                        help='Override random seed')
    parser.add_argument('--step', action='store_true',
                        help='Print the protocol one step at a time')
    parser.add_argument('--sweep', action='store_true',
                        help="Run the config's strategy x algorithm sweep")
    parser.add_argument('--log-dir', type=str, default=str(PROJECT_ROOT / 'results' / 'logs'),
                        help='Directory for log files')
    parser.add_argument('--results-dir', type=str, default=str(PROJECT_ROOT / 'results'),
                        help='Directory for result JSON files')
    parser.add_argument('--no-save', action='store_true',
                        help='Do not write result JSON files')
    parser.add_argument('--quiet', action='store_true',
                        help='Only log, do not print reports')
    parser.add_argument('--verbose', action='store_true',
                        help='Enable debug logging from the game engine')
    args = parser.parse_args()

    config_path = resolve_config_path(args.config)
    raw_config = load_config(str(config_path))

    overrides = {}
    if args.strategy:
        overrides['leader_strategy'] = args.strategy
    if args.algorithm:
        overrides['allocation_algorithm'] = args.algorithm
    if args.iterations is not None:
        overrides['iterations'] = args.iterations
    if args.seed is not None:
        overrides['seed'] = args.seed

    try:
        config = SimulationConfig.from_dict(raw_config)
        if overrides:
            config = config.replace(**overrides)
    except ValueError as e:
        parser.error(str(e))

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if config.seed is not None:
        set_seed(config.seed)

    exp_name = config_path.stem
    save = not args.no_save

    if not args.quiet:
        print(f"Loading config from: {config_path}")

    if args.sweep:
        sweep = raw_config.get('sweep', {})
        try:
            run_sweep(config, sweep, exp_name, save=save, results_dir=args.results_dir)
        except ValueError as e:
            parser.error(str(e))
    elif args.step:
        run_steps(config)
    else:
        run_single(config, exp_name, args.log_dir, save=save, quiet=args.quiet,
                   results_dir=args.results_dir)


if __name__ == '__main__':
    main()
