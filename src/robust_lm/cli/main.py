"""Main CLI entry point for robust-lm"""

import click
import logging
from dataclasses import replace
from pathlib import Path
from typing import Optional

import pandas as pd

from ..algorithms import BayesianRegression, OLSRegression
from ..config import AnalysisConfig, load_config
from ..data import DataLoader, SyntheticDataGenerator
from ..models.fit import Family
from ..algorithms.priors import PRIOR_SETS
from ..outliers import InfluenceDetector, LOOAnalyzer
from ..pipeline import RobustRegressionPipeline


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger('robust-lm-cli')

BAYES_FAMILIES = [f.value for f in Family if f != Family.OLS]


def _load_input(path: str):
    p = Path(path)
    return DataLoader(p.parent).load_dataset(p.name)


def _echo_table(title: str, frame: pd.DataFrame):
    click.echo(f"\n{title}:")
    click.echo(frame.to_string(index=False, float_format=lambda v: f"{v:.3f}"))


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--debug/--no-debug', default=False, help='Enable debug mode')
@click.pass_context
def cli(ctx, config: Optional[str], debug: bool):
    """Robust regression comparison command line interface"""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config'] = load_config(config)
    else:
        ctx.obj['config'] = AnalysisConfig()

    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        ctx.obj['debug'] = True


@cli.command()
@click.option('--output', '-o', type=click.Path(), required=True, help='Output directory')
@click.option('--n', 'n', type=int, default=None, help='Number of observations')
@click.option('--rho', type=float, default=None, help='Correlation between x and y')
@click.option('--seed', type=int, default=None, help='Random seed')
@click.pass_context
def simulate(ctx, output: str, n: Optional[int], rho: Optional[float], seed: Optional[int]):
    """Simulate clean and outlier datasets"""
    sim_config = ctx.obj['config'].simulation
    overrides = {k: v for k, v in {'n': n, 'rho': rho, 'seed': seed}.items() if v is not None}
    if overrides:
        sim_config = replace(sim_config, **overrides)

    generator = SyntheticDataGenerator(sim_config)
    datasets = generator.generate_complete_dataset()
    paths = DataLoader(output).save_all(datasets)

    for key, path in paths.items():
        click.echo(f"{key}: {path} ({datasets[key].n} rows)")


@cli.command()
@click.option('--input', '-i', 'input_path', type=click.Path(exists=True), required=True,
              help='CSV with x and y columns')
@click.pass_context
def ols(ctx, input_path: str):
    """Least-squares fit with Cook's distance"""
    dataset = _load_input(input_path)
    logger.info(f"Fitting OLS to {input_path} ({dataset.n} rows)")

    model = OLSRegression()
    results = model.fit(dataset)
    detector = InfluenceDetector()
    outliers = detector.detect_outliers(results, dataset)

    _echo_table("Coefficients", model.coefficient_table())
    click.echo(f"\nsigma: {results.sigma:.3f}  R^2: {results.r_squared:.3f}  AIC: {results.aic:.2f}")
    click.echo(f"Max Cook's distance: {outliers.statistics['max_cooks_distance']:.3f}")

    flagged = outliers.influence[outliers.influence['influential']]
    if flagged.empty:
        click.echo("No influential observations")
    else:
        _echo_table("Influential observations",
                    flagged[['obs', 'x', 'y', 'leverage', 'studentized_residual', 'cooks_distance']])
    _echo_table("Summary", detector.summarize_outliers(outliers))


@cli.command()
@click.option('--input', '-i', 'input_path', type=click.Path(exists=True), required=True,
              help='CSV with x and y columns')
@click.option('--family', '-f', type=click.Choice(BAYES_FAMILIES), default='gaussian',
              help='Likelihood family')
@click.option('--prior-set', '-p', type=click.Choice(list(PRIOR_SETS)), default='weakly_informative',
              help='Named prior set')
@click.option('--nu', type=float, default=None, help='Degrees of freedom for student_fixed')
@click.option('--chains', type=int, default=None, help='Number of chains')
@click.option('--draws', type=int, default=None, help='Post-warmup draws per chain')
@click.option('--seed', type=int, default=None, help='Sampler seed')
@click.option('--reloo/--no-reloo', default=False, help='Refit observations with high Pareto-k')
@click.pass_context
def fit(ctx, input_path: str, family: str, prior_set: str, nu: Optional[float],
        chains: Optional[int], draws: Optional[int], seed: Optional[int], reloo: bool):
    """Bayesian fit with PSIS-LOO diagnostics"""
    dataset = _load_input(input_path)

    sampler_config = ctx.obj['config'].sampler
    overrides = {k: v for k, v in {'chains': chains, 'draws': draws, 'seed': seed}.items() if v is not None}
    if overrides:
        sampler_config = replace(sampler_config, **overrides)

    if nu is not None and family != Family.STUDENT_FIXED.value:
        raise click.BadParameter("--nu applies only to --family student_fixed", param_hint='--nu')

    model = BayesianRegression(
        family=family,
        prior_set=prior_set,
        nu=nu,
        sampler_config=sampler_config
    )
    results = model.fit(dataset)
    loo = LOOAnalyzer(reloo=reloo).analyze(model)

    _echo_table("Posterior summary", results.summary)
    click.echo(f"\nelpd_loo: {loo.elpd_loo:.2f} (SE {loo.se:.2f})  p_loo: {loo.p_loo:.2f}")
    counts = loo.band_counts()
    click.echo("Pareto-k: " + ", ".join(f"{band} {count}" for band, count in counts.items()))

    bad = loo.bad_observations()
    if bad:
        click.echo(f"Observations with Pareto-k >= 0.7: {bad}")
    if not results.converged:
        click.echo("Warning: chains did not converge", err=True)


@cli.command()
@click.option('--output', '-o', type=click.Path(), required=True, help='Output directory')
@click.option('--reloo/--no-reloo', default=None, help='Refit observations with high Pareto-k')
@click.pass_context
def run(ctx, output: str, reloo: Optional[bool]):
    """Run the full comparison and write tables and figures"""
    config = ctx.obj['config']
    if reloo is not None:
        config = replace(config, reloo=reloo)

    pipeline = RobustRegressionPipeline(config, output_dir=Path(output))
    result = pipeline.run()

    if result.status == "failed":
        for error in result.error_summary:
            click.echo(f"Error: {error}", err=True)
        raise click.ClickException("Pipeline failed")

    tables = result.output('compare')
    _echo_table("Slopes", tables['slopes'][['model', 'dataset', 'slope', 'rel_deviation']])
    if not tables['loo'].empty:
        _echo_table("LOO comparison", tables['loo'][['dataset', 'model', 'elpd_loo', 'se',
                                                      'elpd_diff', 'se_diff', 'max_pareto_k']])

    click.echo(f"\nPipeline {result.status}; outputs in {output}")
    for error in result.error_summary:
        click.echo(f"Warning: {error}", err=True)


def main():
    """Console script entry point"""
    cli(obj={})


if __name__ == '__main__':
    main()
