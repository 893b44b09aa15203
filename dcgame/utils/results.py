"""
Result Management for Data-Center Game Runs

Features:
- Unique run IDs to prevent overwriting
- Structured result storage with metadata
- Easy result retrieval and comparison
- Git commit tracking for reproducibility

Only run outputs are written; nothing here is read back into a simulation.
"""

import json
import hashlib
import socket
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional, List, Union
import numpy as np


class NumpyEncoder(json.JSONEncoder):
    """JSON encoder that handles numpy types."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)


class ResultManager:
    """
    Manages run result storage and retrieval.

    Directory Structure:
        results/
        ├── experiments/
        │   ├── default/
        │   │   ├── Energy-Efficient_Best-Response_20260203_143000_a1b2c3d4.json
        │   │   └── ...
        │   └── strategy_comparison/
        └── logs/
    """

    def __init__(self, base_dir: str = "results"):
        self.base_dir = Path(base_dir)
        self._setup_directories()

    def _setup_directories(self):
        """Create necessary directories."""
        for d in [self.base_dir / "experiments", self.base_dir / "logs"]:
            d.mkdir(parents=True, exist_ok=True)

    def generate_run_id(self, config: Dict) -> str:
        """
        Generate a unique run ID from timestamp and config hash.

        Format: YYYYMMDD_HHMMSS_<8-char-hash>
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        config_str = json.dumps(config, sort_keys=True, default=str)
        config_hash = hashlib.md5(config_str.encode()).hexdigest()[:8]
        return f"{timestamp}_{config_hash}"

    def get_experiment_dir(self, exp_name: str) -> Path:
        """Get or create experiment directory."""
        exp_dir = self.base_dir / "experiments" / exp_name
        exp_dir.mkdir(parents=True, exist_ok=True)
        return exp_dir

    def save_result(
        self,
        exp_name: str,
        run_name: str,
        config: Dict[str, Any],
        results: Dict[str, Any],
        run_id: Optional[str] = None
    ) -> Path:
        """
        Save run results to a JSON file.

        Args:
            exp_name: Name of the experiment (e.g., "strategy_comparison")
            run_name: Name of the run (e.g., "Adaptive_Water-Filling")
            config: Configuration dictionary
            results: Results dictionary
            run_id: Optional custom run ID (auto-generated if None)

        Returns:
            Path to the saved file
        """
        if run_id is None:
            run_id = self.generate_run_id(config)

        exp_dir = self.get_experiment_dir(exp_name)
        filepath = exp_dir / f"{run_name}_{run_id}.json"

        metadata = {
            "run_name": run_name,
            "experiment": exp_name,
            "run_id": run_id,
            "timestamp": datetime.now().isoformat(),
            "git_commit": self._get_git_commit(),
            "hostname": self._get_hostname(),
            "python_version": self._get_python_version()
        }

        full_result = {
            "metadata": metadata,
            "config": config,
            "results": results
        }

        with open(filepath, 'w') as f:
            json.dump(full_result, f, indent=2, cls=NumpyEncoder)

        return filepath

    def load_result(self, filepath: Union[str, Path]) -> Dict:
        """Load a result file."""
        with open(filepath, 'r') as f:
            return json.load(f)

    def list_results(
        self,
        exp_name: str,
        run_name: Optional[str] = None
    ) -> List[Path]:
        """
        List all result files for an experiment, oldest first.

        Args:
            exp_name: Experiment name
            run_name: Optional filter by run name

        Returns:
            List of result file paths
        """
        exp_dir = self.get_experiment_dir(exp_name)
        pattern = f"{run_name}_*.json" if run_name else "*.json"
        files = list(exp_dir.glob(pattern))
        if run_name:
            # Run IDs are three underscore-separated fields
            files = [f for f in files if f.stem.rsplit('_', 3)[0] == run_name]
        # Run IDs start with a sortable timestamp
        files.sort(key=lambda f: "_".join(f.stem.split('_')[-3:]))
        return files

    def get_latest_result(self, exp_name: str, run_name: str) -> Optional[Dict]:
        """Get the most recent result for a run name."""
        files = self.list_results(exp_name, run_name)
        if files:
            return self.load_result(files[-1])
        return None

    def compare_results(
        self,
        exp_name: str,
        metric: str = "social_welfare"
    ) -> Dict[str, Any]:
        """
        Compare the latest result of every run name in an experiment.

        Args:
            exp_name: Experiment name
            metric: Final metric to compare

        Returns:
            Dictionary of {run_name: metric_value}
        """
        latest = {}
        for filepath in self.list_results(exp_name):
            result = self.load_result(filepath)
            latest[result["metadata"]["run_name"]] = result

        return {
            name: result.get("results", {}).get("metrics", {}).get(metric)
            for name, result in latest.items()
        }

    def _get_git_commit(self) -> str:
        """Get current git commit hash."""
        try:
            result = subprocess.run(
                ["git", "rev-parse", "HEAD"],
                capture_output=True,
                text=True,
                timeout=5
            )
            return result.stdout.strip()[:8] if result.returncode == 0 else "unknown"
        except (OSError, subprocess.SubprocessError):
            return "unknown"

    def _get_hostname(self) -> str:
        """Get hostname."""
        try:
            return socket.gethostname()
        except OSError:
            return "unknown"

    def _get_python_version(self) -> str:
        """Get Python version."""
        return f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"


class ExperimentTracker:
    """
    Tracks progress and results for a single run.

    Usage:
        tracker = ExperimentTracker("default", "Adaptive_Best-Response", config)
        result = game.run()
        tracker.log_game_result(result)
        tracker.save()
    """

    def __init__(
        self,
        exp_name: str,
        run_name: str,
        config: Dict[str, Any],
        base_dir: str = "results"
    ):
        self.exp_name = exp_name
        self.run_name = run_name
        self.config = config
        self.result_manager = ResultManager(base_dir)
        self.run_id = self.result_manager.generate_run_id(config)

        self.results = {
            "iterations": [],
            "metrics": {},
            "equilibrium": None,
            "reports": [],
            "timing": {
                "start_time": datetime.now().isoformat(),
                "end_time": None,
                "total_seconds": None
            }
        }

        self._start_time = datetime.now()

    def log_iteration(
        self,
        iteration: int,
        social_welfare: float,
        utilities: List[float],
        unmet_load: float = 0.0
    ):
        """
        Log results for a single best-response iteration.

        Args:
            iteration: Iteration number (1-based)
            social_welfare: Sum of follower utilities
            utilities: Per-follower utilities
            unmet_load: Load no eligible server could take
        """
        self.results["iterations"].append({
            "iteration": iteration,
            "social_welfare": float(social_welfare),
            "mean_utility": float(np.mean(utilities)) if utilities else 0.0,
            "utilities": [float(u) for u in utilities],
            "unmet_load": float(unmet_load),
        })

    def log_final_metrics(self, metrics: Dict[str, Any]):
        """Log final system metrics."""
        self.results["metrics"] = {
            k: float(v) if isinstance(v, (int, float, np.integer, np.floating))
            and not isinstance(v, bool) else v
            for k, v in metrics.items()
        }

    def log_game_result(self, result) -> None:
        """Record every iteration, the equilibrium outcome and final metrics of a GameResult."""
        for report in result.reports:
            if report.step == 3:
                self.log_iteration(
                    report.metrics["iteration"],
                    report.metrics["social_welfare"],
                    report.metrics["utilities"],
                    report.metrics["unmet_load"],
                )
        self.results["equilibrium"] = {
            "reached": bool(result.equilibrium),
            "max_deviation": float(result.max_deviation),
        }
        self.results["reports"] = [r.text for r in result.reports]
        self.log_final_metrics(result.metrics)

    def get_convergence_iteration(self, tolerance: float = 0.01) -> Optional[int]:
        """
        First iteration after which social welfare stopped changing by more
        than ``tolerance``. None if it never settled.
        """
        welfare = [r["social_welfare"] for r in self.results["iterations"]]
        for i in range(1, len(welfare)):
            if all(abs(welfare[j] - welfare[j - 1]) <= tolerance for j in range(i, len(welfare))):
                return self.results["iterations"][i - 1]["iteration"]
        return None

    def save(self) -> Path:
        """Save all results and return the file path."""
        end_time = datetime.now()
        self.results["timing"]["end_time"] = end_time.isoformat()
        self.results["timing"]["total_seconds"] = (end_time - self._start_time).total_seconds()

        convergence = self.get_convergence_iteration()
        if convergence is not None:
            self.results["metrics"]["convergence_iteration"] = convergence

        return self.result_manager.save_result(
            exp_name=self.exp_name,
            run_name=self.run_name,
            config=self.config,
            results=self.results,
            run_id=self.run_id
        )

    def print_summary(self):
        """Print a summary of the run."""
        print(f"\n{'='*50}")
        print(f"Experiment: {self.exp_name}")
        print(f"Run: {self.run_name}")
        print(f"Run ID: {self.run_id}")
        print(f"{'='*50}")

        if self.results["iterations"]:
            print(f"Iterations completed: {len(self.results['iterations'])}")
            print(f"Final welfare: {self.results['iterations'][-1]['social_welfare']:.4f}")

        if self.results["equilibrium"] is not None:
            reached = self.results["equilibrium"]["reached"]
            print(f"Equilibrium: {'reached' if reached else 'not reached'}")

        if self.results["metrics"]:
            print("\nFinal Metrics:")
            for k, v in self.results["metrics"].items():
                if isinstance(v, float):
                    print(f"  {k}: {v:.4f}")
                else:
                    print(f"  {k}: {v}")

        print(f"{'='*50}\n")
