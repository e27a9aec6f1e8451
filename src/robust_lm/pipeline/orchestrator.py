"""Pipeline orchestration for the end-to-end model comparison"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Callable
from datetime import datetime
from pathlib import Path
import json
import logging
import numpy as np
import pandas as pd
from enum import Enum

from ..config import AnalysisConfig
from ..data import DataLoader, SyntheticDataGenerator
from ..algorithms import BayesianRegression, OLSRegression
from ..outliers import InfluenceDetector, LOOAnalyzer
from ..reporting import (
    ModelComparator, plot_coefficients, plot_cooks_distance,
    plot_influence, plot_regression_curves, save_all
)


class StepStatus(str, Enum):
    """Pipeline step status"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PipelineStep:
    """Individual pipeline step"""
    name: str
    function: Callable
    dependencies: List[str] = field(default_factory=list)
    optional: bool = False


@dataclass
class StepResult:
    """Result from a pipeline step"""
    step_name: str
    status: StepStatus
    start_time: datetime
    end_time: datetime
    output: Any = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()


@dataclass
class PipelineResult:
    """Overall pipeline execution result"""
    pipeline_id: str
    start_time: datetime
    end_time: datetime
    status: str  # "success", "partial_success", "failed"
    step_results: Dict[str, StepResult]
    final_output: Optional[Any] = None
    error_summary: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def output(self, step_name: str) -> Any:
        """Output of a completed step"""
        result = self.step_results.get(step_name)
        if result is None or result.status != StepStatus.COMPLETED:
            raise KeyError(f"Step '{step_name}' did not complete")
        return result.output


class Pipeline:
    """Generic pipeline orchestrator"""

    def __init__(self, name: str):
        """Initialize pipeline

        Args:
            name: Pipeline name
        """
        self.name = name
        self.steps: Dict[str, PipelineStep] = {}
        self.logger = logging.getLogger(f"pipeline.{name}")

    def add_step(self, step: PipelineStep):
        """Add step to pipeline

        Args:
            step: Pipeline step to add
        """
        self.steps[step.name] = step

    def execute(self, context: Dict[str, Any]) -> PipelineResult:
        """Execute pipeline

        Args:
            context: Execution context

        Returns:
            PipelineResult with execution details
        """
        pipeline_id = context.get('pipeline_id', str(datetime.now().timestamp()))
        start_time = datetime.now()
        step_results = {}

        self.logger.info(f"Starting pipeline execution: {pipeline_id}")

        execution_order = self._determine_execution_order()

        for step_name in execution_order:
            step = self.steps[step_name]

            if not self._check_dependencies(step, step_results):
                now = datetime.now()
                if step.optional:
                    step_results[step_name] = StepResult(
                        step_name=step_name,
                        status=StepStatus.SKIPPED,
                        start_time=now,
                        end_time=now
                    )
                    continue
                step_results[step_name] = StepResult(
                    step_name=step_name,
                    status=StepStatus.FAILED,
                    start_time=now,
                    end_time=now,
                    error="Dependencies not met"
                )
                break

            step_result = self._execute_step(step, context, step_results)
            step_results[step_name] = step_result

            if step_result.output is not None:
                context[f"{step_name}_output"] = step_result.output

            if step_result.status == StepStatus.FAILED and not step.optional:
                self.logger.error(f"Required step {step_name} failed, stopping pipeline")
                break

        failed_steps = [r for r in step_results.values() if r.status == StepStatus.FAILED]
        if not failed_steps:
            status = "success"
        elif all(self.steps[r.step_name].optional for r in failed_steps):
            status = "partial_success"
        else:
            status = "failed"

        final_step = execution_order[-1] if execution_order else None
        final_output = None
        if final_step and final_step in step_results:
            final_output = step_results[final_step].output

        error_summary = [
            f"{r.step_name}: {r.error}"
            for r in step_results.values()
            if r.status == StepStatus.FAILED and r.error
        ]

        metrics = {
            'total_duration_seconds': (datetime.now() - start_time).total_seconds(),
            'steps_executed': len(step_results),
            'steps_succeeded': sum(1 for r in step_results.values() if r.status == StepStatus.COMPLETED),
            'steps_failed': len(failed_steps),
            'step_durations': {name: r.duration_seconds for name, r in step_results.items()}
        }

        self.logger.info(f"Pipeline {pipeline_id} finished with status {status}")

        return PipelineResult(
            pipeline_id=pipeline_id,
            start_time=start_time,
            end_time=datetime.now(),
            status=status,
            step_results=step_results,
            final_output=final_output,
            error_summary=error_summary,
            metrics=metrics
        )

    def _determine_execution_order(self) -> List[str]:
        """Determine step execution order based on dependencies"""
        order = []
        visited = set()
        in_progress = set()

        def visit(step_name: str):
            if step_name in visited:
                return
            if step_name in in_progress:
                raise ValueError(f"Circular dependency involving step '{step_name}'")
            in_progress.add(step_name)

            step = self.steps.get(step_name)
            if step:
                for dep in step.dependencies:
                    if dep in self.steps:
                        visit(dep)
                order.append(step_name)

            in_progress.discard(step_name)
            visited.add(step_name)

        for step_name in self.steps:
            visit(step_name)

        return order

    def _check_dependencies(self, step: PipelineStep, results: Dict[str, StepResult]) -> bool:
        """Check if step dependencies are met"""
        for dep in step.dependencies:
            if dep not in results:
                return False
            if results[dep].status not in [StepStatus.COMPLETED, StepStatus.SKIPPED]:
                return False
        return True

    def _execute_step(self, step: PipelineStep, context: Dict[str, Any],
                      previous_results: Dict[str, StepResult]) -> StepResult:
        """Execute a single pipeline step"""
        start_time = datetime.now()
        self.logger.info(f"Executing step: {step.name}")

        try:
            output = step.function(context, previous_results)
        except Exception as e:
            self.logger.error(f"Step {step.name} failed: {str(e)}")
            return StepResult(
                step_name=step.name,
                status=StepStatus.FAILED,
                start_time=start_time,
                end_time=datetime.now(),
                error=str(e)
            )

        return StepResult(
            step_name=step.name,
            status=StepStatus.COMPLETED,
            start_time=start_time,
            end_time=datetime.now(),
            output=output
        )


class RobustRegressionPipeline(Pipeline):
    """Simulate data, fit every configured model and compare them"""

    GRID_POINTS = 100

    def __init__(self, config: Optional[AnalysisConfig] = None,
                 output_dir: Optional[Path] = None):
        """Initialize comparison pipeline

        Args:
            config: Analysis configuration (default: standard comparison)
            output_dir: Directory for tables and figures; nothing is
                written when omitted
        """
        super().__init__("robust_regression")
        self.config = config or AnalysisConfig()
        output_dir = output_dir or self.config.output_dir
        self.output_dir = Path(output_dir) if output_dir else None
        self._setup_steps()

    def _setup_steps(self):
        """Set up comparison steps"""
        self.add_step(PipelineStep(
            name="simulate",
            function=self._simulate_step
        ))

        self.add_step(PipelineStep(
            name="ols",
            function=self._ols_step,
            dependencies=["simulate"]
        ))

        self.add_step(PipelineStep(
            name="bayes",
            function=self._bayes_step,
            dependencies=["simulate"]
        ))

        self.add_step(PipelineStep(
            name="loo",
            function=self._loo_step,
            dependencies=["bayes"]
        ))

        self.add_step(PipelineStep(
            name="compare",
            function=self._compare_step,
            dependencies=["ols", "loo"]
        ))

        # A failed figure should not discard the comparison tables
        self.add_step(PipelineStep(
            name="report",
            function=self._report_step,
            dependencies=["compare"],
            optional=True
        ))

    def run(self, pipeline_id: Optional[str] = None) -> PipelineResult:
        """Execute all steps with a fresh context"""
        context: Dict[str, Any] = {}
        if pipeline_id:
            context['pipeline_id'] = pipeline_id
        return self.execute(context)

    def _simulate_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Simulate clean, outlier and outlier-dropped datasets"""
        generator = SyntheticDataGenerator(self.config.simulation)
        datasets = generator.generate_complete_dataset()

        return {
            'datasets': datasets,
            'outlier_indices': generator.outlier_indices(datasets['outlier'])
        }

    def _ols_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Least squares with Cook's distance for each OLS model"""
        datasets = previous_results['simulate'].output['datasets']
        detector = InfluenceDetector()

        models, fits, influence = {}, {}, {}
        for spec in self.config.ols_models():
            dataset = datasets[spec.dataset]
            model = OLSRegression()
            results = model.fit(dataset)
            outliers = detector.detect_outliers(results, dataset)

            models[spec.name] = model
            influence[spec.name] = outliers.influence
            fits[spec.name] = model.to_model_fit(
                spec.name, outliers.influence['cooks_distance'].to_numpy()
            )
            self.logger.info(
                f"{spec.name}: slope={results.slope:.3f}, "
                f"max Cook's distance={outliers.statistics['max_cooks_distance']:.3f}"
            )

        return {'models': models, 'fits': fits, 'influence': influence}

    def _bayes_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Posterior sampling for each Bayesian model"""
        datasets = previous_results['simulate'].output['datasets']

        models = {}
        for spec in self.config.bayesian_models():
            model = BayesianRegression(
                family=spec.family,
                prior_set=spec.prior_set,
                prior_overrides=spec.priors,
                nu=spec.nu,
                sampler_config=self.config.sampler
            )
            model.fit(datasets[spec.dataset], label=spec.name)
            models[spec.name] = model

        return {'models': models}

    def _loo_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """PSIS-LOO and Pareto-k for each Bayesian model"""
        models = previous_results['bayes'].output['models']
        analyzer = LOOAnalyzer(reloo=self.config.reloo)

        loo, fits = {}, {}
        for name, model in models.items():
            result = analyzer.analyze(model)
            loo[name] = result
            fits[name] = model.to_model_fit(name, result)
            self.logger.info(
                f"{name}: elpd_loo={result.elpd_loo:.2f} (SE {result.se:.2f}), "
                f"max Pareto-k={np.max(result.pareto_k):.2f}"
            )

        return {'loo': loo, 'fits': fits}

    def _compare_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Build comparison tables across all fits"""
        datasets = previous_results['simulate'].output['datasets']
        comparator = ModelComparator(datasets)
        comparator.add_all(previous_results['ols'].output['fits'].values())
        comparator.add_all(previous_results['loo'].output['fits'].values())

        return {
            'comparator': comparator,
            'coefficients': comparator.coefficient_table(),
            'influence': comparator.influence_table(),
            'influence_summary': comparator.influence_summary(),
            'loo': comparator.loo_table(),
            'slopes': comparator.slope_table(self.config.reference_model)
        }

    def _regression_curves(self, previous_results: Dict[str, StepResult]) -> Dict[str, Dict[str, pd.DataFrame]]:
        """Fitted line and band per model, grouped by dataset name"""
        datasets = previous_results['simulate'].output['datasets']
        fitted_models = {
            **previous_results['ols'].output['models'],
            **previous_results['bayes'].output['models']
        }

        curves: Dict[str, Dict[str, pd.DataFrame]] = {}
        for spec in self.config.models:
            dataset = datasets[spec.dataset]
            grid = np.linspace(dataset.x.min(), dataset.x.max(), self.GRID_POINTS)
            model = fitted_models[spec.name]
            curve = model.fitted(grid) if spec.is_bayesian else model.predict(grid)
            curves.setdefault(spec.dataset, {})[spec.name] = curve

        return curves

    def _report_step(self, context: Dict[str, Any], previous_results: Dict[str, StepResult]) -> Dict[str, Any]:
        """Write tables and figures"""
        if self.output_dir is None:
            self.logger.info("No output directory configured, skipping report files")
            return {'report_path': None, 'files_generated': []}

        output_path = self.output_dir
        output_path.mkdir(parents=True, exist_ok=True)
        files: List[str] = []

        simulated = previous_results['simulate'].output
        for path in DataLoader(output_path / 'data').save_all(simulated['datasets']).values():
            files.append(str(path))

        tables = previous_results['compare'].output
        for key in ('coefficients', 'influence', 'influence_summary', 'loo', 'slopes'):
            path = output_path / f"{key}.csv"
            tables[key].to_csv(path, index=False)
            files.append(str(path))

        comparator: ModelComparator = tables['comparator']
        reference = comparator.fits[self.config.reference_model]
        figures = {
            'coefficients': plot_coefficients(
                tables['coefficients'],
                reference={'intercept': reference.intercept, 'slope': reference.slope}
            ),
            'influence': plot_influence(tables['influence'])
        }

        for name, frame in previous_results['ols'].output['influence'].items():
            figures[f"cooks_{name}"] = plot_cooks_distance(frame)

        datasets = simulated['datasets']
        for key, curves in self._regression_curves(previous_results).items():
            highlight = simulated['outlier_indices'] if key == 'outlier' else ()
            figures[f"curves_{key}"] = plot_regression_curves(datasets[key], curves, highlight=highlight)

        for path in save_all(figures, output_path / 'figures').values():
            files.append(str(path))

        with open(output_path / 'summary.json', 'w') as f:
            json.dump({
                'reference_model': self.config.reference_model,
                'slopes': {
                    row['model']: float(row['slope'])
                    for row in tables['slopes'].to_dict(orient='records')
                },
                'max_influence': {
                    row['model']: float(row['max_score'])
                    for row in tables['influence_summary'].to_dict(orient='records')
                }
            }, f, indent=2)
        files.append(str(output_path / 'summary.json'))

        self.logger.info(f"Wrote {len(files)} report files to {output_path}")
        return {'report_path': str(output_path), 'files_generated': files}
