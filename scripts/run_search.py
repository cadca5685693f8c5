"""
Run the forged heat sink search.

Usage:
    python scripts/run_search.py --config configs/search.yaml --iterations 500
    python scripts/run_search.py --load outputs/best.bin --save outputs/best.bin
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.exceptions import HeatsinkError
from src.geometry import VoxelGrid, load_design, save_design
from src.optimization import MutationStrategy
from src.optimization.factory import create_search
from src.utils import ExperimentConfig, setup_logger
from src.visualization import plot_cross_section, plot_score_history


def parse_args():
    parser = argparse.ArgumentParser(description="Search for low-temperature heat sink designs")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/search.yaml"),
        help="Path to search config"
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Number of search iterations (until Ctrl-C if omitted)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Override random seed from config"
    )
    parser.add_argument(
        "--strategy",
        type=str,
        default=None,
        choices=[s.value for s in MutationStrategy],
        help="Override mutation strategy from config"
    )
    parser.add_argument(
        "--load",
        type=Path,
        default=None,
        help="Start from a saved design instead of the seed shape"
    )
    parser.add_argument(
        "--save",
        type=Path,
        default=None,
        help="Where to write the best design (output_dir/best_design.bin if omitted)"
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save cross-section and score history plots"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help="Console log level"
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Also write logs to this directory"
    )
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logger(level=args.log_level, log_dir=args.log_dir)

    overrides = {}
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.strategy is not None:
        overrides["mutation"] = {"strategy": args.strategy}
    config = ExperimentConfig.from_yaml(args.config, overrides)

    output_dir = config.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)
    config.to_yaml(output_dir / 'config.yaml')

    print("=" * 60)
    print("FORGED HEAT SINK SEARCH")
    print("=" * 60)
    print(f"Experiment: {config.name}")
    print(f"Output: {output_dir}")

    grid = VoxelGrid.from_config(config.grid_config())
    if args.load:
        logger.info("Loading design from {}", args.load)
        load_design(grid, args.load)

    print(f"Lattice: {grid.cells_wide}^3, air padding {grid.air_padding}")
    print(f"Metal cells: {grid.count_enabled()}")
    print(f"Strategy: {config.mutation_strategy}, backend: {config.solver_backend}")

    search = create_search(config, grid=grid)
    try:
        result = search.run(
            max_iterations=args.iterations,
            show_progress=args.iterations is not None,
        )
    except HeatsinkError as e:
        logger.error("Search failed: {}", e)
        sys.exit(1)
    finally:
        search.solver.close()

    print(result.summary())

    # Save the best design, not the last rejected candidate
    grid.restore_enabled(result.best_design)
    grid.recompute_boundary_flags()

    save_path = args.save or output_dir / 'best_design.bin'
    if grid.cells_wide % 8 == 0:
        save_design(grid, save_path)
        print(f"Saved design to {save_path}")
    else:
        logger.warning("cells_wide={} is not divisible by 8, design not saved", grid.cells_wide)

    if args.plot:
        plot_cross_section(
            grid, field="enabled", axis="y", index=grid.top_layer,
            title="Top cross-section",
            save_path=output_dir / 'cross_section.png', show=False,
        )
        plot_cross_section(
            grid, field="heat", axis="z",
            save_path=output_dir / 'heat_z.png', show=False,
        )
        plot_score_history(
            result.score_history,
            save_path=output_dir / 'score_history.png', show=False,
        )
        print(f"Saved plots to {output_dir}")


if __name__ == "__main__":
    main()
