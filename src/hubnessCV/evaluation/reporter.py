"""
Results reporting utilities for hubnessCV.

This module turns cross-validation results into tables and files.
"""

from typing import Any, Dict, List, Optional, Union
from pathlib import Path
from datetime import datetime
import json
import numpy as np
import pandas as pd

from .metrics import MetricsCalculator, SCALAR_METRICS
from ..utils.helpers import ensure_directory, save_object
from ..utils.logger import get_logger


class ResultsReporter:
    """Reporter for hubnessCV results."""

    def __init__(self):
        self.logger = get_logger("ResultsReporter")
        self.metrics_calculator = MetricsCalculator()

    def summary_table(self, results: Any) -> pd.DataFrame:
        """
        One row per classifier with its averaged estimates.

        Args:
            results: CVResults of a run

        Returns:
            DataFrame indexed by classifier name
        """
        rows = []
        for name in results.classifier_names:
            average = results.averages[name]
            row: Dict[str, Any] = {'classifier': name}
            row.update(average.scalars())
            summary = self.metrics_calculator.summarize(results.estimators[name])
            for metric in SCALAR_METRICS:
                row[f'{metric}_std'] = summary.get(f'{metric}_std', np.nan)
            row['completed_folds'] = results.num_completed_folds.get(name, 0)
            row['full_folds'] = results.num_full_folds[name]
            row['failed_folds'] = len(results.failures_of(name))
            row['execution_time'] = results.execution_times[name]
            rows.append(row)
        return pd.DataFrame(rows).set_index('classifier')

    def fold_table(self, results: Any) -> pd.DataFrame:
        """Scalar estimates of every (classifier, repetition, fold); failed folds are left out."""
        rows = []
        for name in results.classifier_names:
            for trial, estimator in enumerate(results.estimators[name]):
                if estimator is None:
                    continue
                row = {
                    'classifier': name,
                    'repetition': trial // results.num_folds,
                    'fold': trial % results.num_folds,
                }
                row.update(estimator.scalars())
                rows.append(row)
        columns = ['classifier', 'repetition', 'fold', *SCALAR_METRICS]
        return pd.DataFrame(rows, columns=columns)

    def point_table(self, results: Any, instance_names: Optional[List[str]] = None) -> pd.DataFrame:
        """Number of repetitions in which each point was classified correctly, per classifier."""
        table = pd.DataFrame({name: results.correct_counts[name] for name in results.classifier_names})
        if instance_names is not None:
            table.index = instance_names
        table.index.name = 'instance'
        return table

    def to_dict(self, results: Any) -> Dict[str, Any]:
        """JSON-friendly summary of a run."""
        return {
            'generated': datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            'times': results.times,
            'num_folds': results.num_folds,
            'k_big': results.k_big,
            'parameters': results.parameters,
            'classifiers': {
                name: {
                    'average': results.averages[name].to_dict(),
                    'completed_folds': results.num_completed_folds.get(name, 0),
                    'full_folds': results.num_full_folds[name],
                    'execution_time': results.execution_times[name],
                }
                for name in results.classifier_names
            },
            'failures': [vars(failure) for failure in results.failures],
        }

    def save_results_json(self, results: Dict[str, Any], output_path: Union[str, Path]) -> None:
        """Save results as JSON file."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self._make_json_serializable(results), f, indent=2)

        self.logger.info(f"Results saved as JSON: {output_path}")

    def _make_json_serializable(self, obj: Any) -> Any:
        """Convert numpy values and containers to JSON-serializable types."""
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.generic):
            return obj.item()
        elif isinstance(obj, dict):
            return {str(key): self._make_json_serializable(value) for key, value in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._make_json_serializable(item) for item in obj]
        else:
            return obj

    def write_all(
        self,
        results: Any,
        output_dir: Union[str, Path],
        instance_names: Optional[List[str]] = None
    ) -> Dict[str, Path]:
        """
        Write every report of a run into a directory.

        Args:
            results: CVResults of a run
            output_dir: Target directory, created if needed
            instance_names: Optional names for the per-point table

        Returns:
            Paths of the written files by report name
        """
        output_dir = ensure_directory(output_dir)
        paths = {
            'summary': output_dir / 'summary.csv',
            'folds': output_dir / 'fold_estimates.csv',
            'points': output_dir / 'point_correctness.csv',
            'json': output_dir / 'summary.json',
            'results': output_dir / 'cv_results.joblib',
        }

        self.summary_table(results).to_csv(paths['summary'])
        self.fold_table(results).to_csv(paths['folds'], index=False)
        self.point_table(results, instance_names).to_csv(paths['points'])
        self.save_results_json(self.to_dict(results), paths['json'])
        save_object(results, paths['results'])

        self.logger.info(f"Reports written to {output_dir}")
        return paths
