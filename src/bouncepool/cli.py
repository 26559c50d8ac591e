import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

app = typer.Typer(
    name="bouncepool",
    help="Complete, no and partial pooling of bounce time by county",
    add_completion=False,
)

console = Console()


class ModelType(str, Enum):
    pooled = "pooled"
    unpooled = "unpooled"
    hierarchical = "hierarchical"
    hierarchical_centered = "hierarchical_centered"


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show library log messages"
    ),
) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(data_path: Path):
    from pandera.errors import SchemaError, SchemaErrors

    from bouncepool.data.schemas import load_bounce_data

    console.print(f"📊 Loading data from [cyan]{data_path}[/cyan]")
    try:
        df = load_bounce_data(data_path)
    except (SchemaError, SchemaErrors, KeyError) as e:
        console.print(f"   ❌ [red]Validation failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print("   ✅ Data validation passed")
    console.print(
        f"   {len(df)} visits across {df['county'].nunique()} counties\n"
    )
    return df


@app.command()
def generate(
    output_dir: Path = typer.Option(
        Path("data/"), "--output", "-o", help="Output directory for generated data"
    ),
    seed: int = typer.Option(
        42, "--seed", "-s", help="Random seed for reproducibility"
    ),
    show_summary: bool = typer.Option(
        True, "--summary/--no-summary", help="Print dataset summary after generation"
    ),
) -> None:
    """Generate synthetic bounce-rate data with known ground truth."""
    from bouncepool.data.synthetic import (
        SyntheticDataConfig,
        generate_bounce_data,
        save_synthetic_data,
        summarize_dataset,
    )

    console.print("\n🌐 [bold blue]bouncepool[/bold blue] — Synthetic Data Generator\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Generating synthetic data...", total=None)

        config = SyntheticDataConfig(random_seed=seed)
        df, true_params = generate_bounce_data(config, random_seed=seed)

        progress.update(task, description="Saving files...")
        save_synthetic_data(df, true_params, output_dir=str(output_dir))

    console.print(f"\n✅ [green]Data saved to {output_dir}[/green]")
    console.print(f"   📊 {output_dir}/bounce_rates.csv")
    console.print(f"   🎯 {output_dir}/ground_truth.json\n")

    if show_summary:
        console.print(summarize_dataset(df).to_string())
        console.print()


@app.command()
def fit(
    data_path: Path = typer.Argument(
        ..., help="Path to bounce-rate CSV file", exists=True
    ),
    model_type: ModelType = typer.Option(
        ModelType.hierarchical, "--model", "-m", help="Model architecture to fit"
    ),
    draws: int = typer.Option(
        1000, "--draws", "-d", help="Number of posterior draws per chain"
    ),
    tune: int = typer.Option(1000, "--tune", "-t", help="Number of tuning steps"),
    chains: int = typer.Option(4, "--chains", "-c", help="Number of MCMC chains"),
    target_accept: float = typer.Option(
        0.9, "--target-accept", help="Target acceptance rate"
    ),
    output_dir: Path = typer.Option(
        Path("results/"), "--output", "-o", help="Output directory for traces"
    ),
    seed: int = typer.Option(42, "--seed", "-s", help="Random seed"),
    run_ppc: bool = typer.Option(
        True, "--ppc/--no-ppc", help="Run posterior predictive checks"
    ),
) -> None:
    """Fit a Bayesian model with NUTS and save the trace."""
    from bouncepool.config import SamplerConfig
    from bouncepool.errors import InvalidInputError
    from bouncepool.evaluation import (
        format_diagnostics_report,
        posterior_group_estimates,
        run_mcmc_diagnostics,
    )
    from bouncepool.models import (
        build_hierarchical_model,
        build_pooled_model,
        build_unpooled_model,
        sample_model,
        sample_posterior_predictive,
    )

    console.print("\n🌐 [bold blue]bouncepool[/bold blue] — Bayesian Fit\n")

    df = _load(data_path)

    try:
        sampler = SamplerConfig(
            draws=draws,
            tune=tune,
            chains=chains,
            target_accept=target_accept,
            random_seed=seed,
        )
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"🏗️  Building [bold]{model_type.value}[/bold] model...")

    model_builders = {
        ModelType.pooled: build_pooled_model,
        ModelType.unpooled: build_unpooled_model,
        ModelType.hierarchical: build_hierarchical_model,
        ModelType.hierarchical_centered: lambda d: build_hierarchical_model(
            d, centered=True
        ),
    }
    try:
        model = model_builders[model_type](df)
    except InvalidInputError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(
        f"🎲 Sampling ({draws} draws × {chains} chains, {tune} tuning steps)..."
    )
    console.print(f"   Target acceptance: {target_accept}\n")

    trace = sample_model(model, sampler, progressbar=True)

    if run_ppc:
        console.print("\n📈 Running posterior predictive checks...")
        trace = sample_posterior_predictive(model, trace, random_seed=seed)

    console.print("\n🔍 Running diagnostics...")
    report = run_mcmc_diagnostics(trace)
    console.print(format_diagnostics_report(report))

    output_dir.mkdir(exist_ok=True, parents=True)
    trace_path = output_dir / f"{model_type.value}_trace.nc"
    trace.to_netcdf(trace_path)

    console.print(f"\n✅ [green]Trace saved to {trace_path}[/green]\n")

    counties = [str(c) for c in df["county"].unique()]
    _print_coefficient_summary(posterior_group_estimates(trace, counties))


def _print_coefficient_summary(estimates) -> None:
    console.print(
        "📊 [bold]County coefficients[/bold] (posterior mean ± std, standardized age)\n"
    )

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("County", style="dim")
    table.add_column("Intercept", justify="right")
    table.add_column("Slope", justify="right")

    for county, row in estimates.iterrows():
        table.add_row(
            str(county),
            f"{row['intercept_mean']:.2f} ± {row['intercept_std']:.2f}",
            f"{row['slope_mean']:.2f} ± {row['slope_std']:.2f}",
        )

    console.print(table)
    console.print()


def _weight_cell(val: float) -> str:
    if val != val:
        return "[dim]n/a[/dim]"
    if val > 0.6:
        return f"[red]{val:.2f}[/red]"
    if val < 0.3:
        return f"[green]{val:.2f}[/green]"
    return f"[yellow]{val:.2f}[/yellow]"


@app.command()
def shrinkage(
    data_path: Path = typer.Argument(
        ..., help="Path to bounce-rate CSV file", exists=True
    ),
    random_slope: bool = typer.Option(
        True, "--random-slope/--random-intercept", help="Let the age slope vary"
    ),
    reml: bool = typer.Option(
        False, "--reml/--ml", help="Restricted or plain maximum likelihood"
    ),
    trace_path: Optional[Path] = typer.Option(
        None,
        "--trace",
        help="Hierarchical trace (.nc); take variances from its posterior",
        exists=True,
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save the comparison table as CSV"
    ),
) -> None:
    """Partial-pooling estimates from the closed-form shrinkage formula."""
    from bouncepool.errors import InvalidInputError
    from bouncepool.evaluation import (
        compare_pooling_strategies,
        detect_simpsons_paradox,
        format_pooling_report,
    )
    from bouncepool.models import (
        build_global_model,
        fit_mixed_model,
        fit_pooled_ols,
        fit_unpooled_ols,
        global_model_from_trace,
        group_summaries,
    )
    from bouncepool.shrinkage import estimate_partial_pooling

    console.print("\n🌐 [bold blue]bouncepool[/bold blue] — Shrinkage Analysis\n")

    df = _load(data_path)

    mixed = None
    try:
        pooled = fit_pooled_ols(df)
        unpooled = fit_unpooled_ols(df, scaler=pooled.scaler)
        if trace_path is None:
            mixed = fit_mixed_model(
                df, random_slope=random_slope, reml=reml, scaler=pooled.scaler
            )
    except InvalidInputError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if mixed is None:
        import arviz as az

        global_model = global_model_from_trace(az.from_netcdf(trace_path), pooled)
        source = f"posterior of {trace_path.name}"
    else:
        global_model = build_global_model(pooled, mixed)
        source = "REML fit" if reml else "ML fit"

    console.print(f"[bold]Variance components[/bold] ({source})")
    console.print(f"   σ²  (residual):        {global_model.residual_variance:10.3f}")
    console.print(f"   τ²  (intercept):       {global_model.intercept_variance:10.3f}")
    console.print(f"   τ²  (slope):           {global_model.slope_variance:10.3f}\n")

    collapsed = global_model.intercept_variance == 0 or (
        random_slope and global_model.slope_variance == 0
    )
    if collapsed:
        console.print(
            "[yellow]⚠️  Singular fit: the data cannot separate between-county "
            "variation from noise for at least one coefficient. Those "
            "coefficients are fully pooled.[/yellow]\n"
        )

    partial = estimate_partial_pooling(group_summaries(unpooled), global_model)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("County", style="dim")
    table.add_column("n", justify="right")
    table.add_column("Intercept", justify="right")
    table.add_column("w (int)", justify="right")
    table.add_column("Slope", justify="right")
    table.add_column("w (slope)", justify="right")

    for county, est in partial.items():
        table.add_row(
            county,
            str(est.sample_count),
            f"{est.intercept:.2f}",
            _weight_cell(est.intercept_weight),
            f"{est.slope:.2f}",
            _weight_cell(est.slope_weight),
        )

    console.print(table)
    console.print(
        "\n[dim]w = weight on the county's own estimate\n"
        "Red (>0.6): driven by own data\n"
        "Green (<0.3): heavy borrowing from the population[/dim]\n"
    )

    comparison = compare_pooling_strategies(pooled, unpooled, partial, mixed=mixed)
    simpson = detect_simpsons_paradox(pooled, unpooled)
    console.print(format_pooling_report(comparison, simpson))

    if output is not None:
        output.parent.mkdir(exist_ok=True, parents=True)
        comparison.to_csv(output)
        console.print(f"\n✅ Comparison saved to {output}")

    console.print()


@app.command()
def compare(
    results_dir: Path = typer.Argument(
        Path("results/"), help="Directory containing fitted traces"
    ),
    metric: str = typer.Option(
        "loo", "--metric", "-m", help="Comparison metric: loo, waic"
    ),
) -> None:
    """Rank fitted models by expected log predictive density."""
    import arviz as az

    console.print("\n🌐 [bold blue]bouncepool[/bold blue] — Model Comparison\n")

    trace_files = sorted(results_dir.glob("*_trace.nc"))

    if len(trace_files) < 2:
        console.print("[red]Need at least 2 fitted models to compare.[/red]")
        console.print(f"Found {len(trace_files)} trace(s) in {results_dir}")
        raise typer.Exit(1)

    console.print(f"📂 Found {len(trace_files)} models in {results_dir}\n")

    traces: dict[str, az.InferenceData] = {}
    for trace_file in trace_files:
        name = trace_file.stem.replace("_trace", "")
        console.print(f"   Loading {name}...")
        traces[name] = az.from_netcdf(trace_file)

    ic = "loo" if metric.lower() == "loo" else "waic"
    console.print(f"\n📊 Computing {ic.upper()} comparison...\n")

    try:
        comparison = az.compare(traces, ic=ic, scale="log")
    except (TypeError, ValueError) as e:
        console.print(f"[red]Comparison failed: {escape(str(e))}[/red]")
        console.print("Make sure all models have log_likelihood in their traces.")
        raise typer.Exit(1)

    console.print(comparison.to_string())
    console.print()

    best_model = str(comparison.index[0])
    console.print(f"🏆 [green]Best model: {best_model}[/green]")

    if "hierarchical" in best_model:
        console.print("   → Partial pooling is stabilizing the sparse counties")
    elif "unpooled" in best_model:
        console.print("   → Counties may be too different for pooling")
    else:
        console.print("   → Counties appear very similar")

    console.print()


@app.command()
def evaluate(
    trace_path: Path = typer.Argument(
        ..., help="Path to fitted trace (.nc file)", exists=True
    ),
    data_path: Optional[Path] = typer.Option(
        None, "--data", "-d", help="Path to original data (for PPC)"
    ),
    ground_truth_path: Optional[Path] = typer.Option(
        None, "--truth", "-t", help="Path to ground truth JSON"
    ),
    show_shrinkage: bool = typer.Option(
        True, "--shrinkage/--no-shrinkage", help="Show shrinkage analysis"
    ),
) -> None:
    """Diagnostics, posterior predictive checks and ground-truth recovery."""
    import arviz as az

    from bouncepool.evaluation import (
        compare_to_ground_truth,
        compute_shrinkage,
        format_diagnostics_report,
        posterior_group_estimates,
        posterior_predictive_check_by_county,
        run_mcmc_diagnostics,
    )

    console.print("\n🌐 [bold blue]bouncepool[/bold blue] — Model Evaluation\n")

    console.print(f"📂 Loading trace from [cyan]{trace_path}[/cyan]")
    trace = az.from_netcdf(trace_path)

    console.print("\n" + "=" * 60)
    report = run_mcmc_diagnostics(trace)
    console.print(format_diagnostics_report(report))

    df = None
    if data_path is not None and data_path.exists():
        df = _load(data_path)

        if "posterior_predictive" in trace.groups():
            ppc = posterior_predictive_check_by_county(trace, df)
            console.print("\nPOSTERIOR PREDICTIVE CHECK BY COUNTY")
            console.print(ppc.round(3).to_string(index=False))
        else:
            console.print("[yellow]Trace has no posterior predictive samples.[/yellow]")

    posterior = trace.posterior
    is_grouped = "intercept" in posterior and "county" in posterior["intercept"].dims
    if show_shrinkage and is_grouped:
        console.print("\n" + "=" * 60)
        console.print("SHRINKAGE ANALYSIS")
        console.print("=" * 60)
        console.print("(How much each county borrowed from the population)\n")

        shrink = compute_shrinkage(trace)

        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("County", style="dim")
        table.add_column("Intercept", justify="right")
        table.add_column("Slope", justify="right")

        for county, row in shrink.iterrows():
            table.add_row(
                str(county),
                _weight_cell(1 - float(row["intercept"])),
                _weight_cell(1 - float(row["slope"])),
            )

        console.print(table)

    if ground_truth_path is not None and ground_truth_path.exists():
        if df is None:
            console.print(
                "[yellow]--truth needs --data to rebuild the age scaling.[/yellow]"
            )
        else:
            from bouncepool.data.synthetic import load_ground_truth
            from bouncepool.transforms.scaling import Standardizer

            console.print("\n" + "=" * 60)
            console.print("GROUND TRUTH COMPARISON")
            console.print("=" * 60 + "\n")

            truth = load_ground_truth(str(ground_truth_path))
            estimates = posterior_group_estimates(trace, truth.county_names)
            scaler = Standardizer.fit(df["age"].to_numpy())
            recovery = compare_to_ground_truth(
                estimates,
                truth,
                scaler,
                intercept_col="intercept_mean",
                slope_col="slope_mean",
            )
            console.print(recovery.round(3).to_string())

            rmse = float((recovery["intercept_error"] ** 2).mean() ** 0.5)
            console.print(f"\nIntercept RMSE: {rmse:.2f} s\n")

    console.print()


@app.command()
def info() -> None:
    """What this tool is for."""
    console.print(
        """
[bold blue]🌐 bouncepool[/bold blue]
[dim]Complete, no and partial pooling for grouped regression[/dim]

[bold]The Problem[/bold]
Older visitors seem to stay on the site for less time. But London has
150 visits, Cumbria has 3, and younger counties bounce later overall.
Ignore the counties and the age effect can flip sign (Simpson's paradox).
Fit each county alone and Cumbria's slope is pure noise.

[bold]The Solution: Partial Pooling[/bold]
Each county's estimate is a precision-weighted blend of its own fit and
the population fit:

    w = (n / σ²) / (n / σ² + 1 / τ²)

Sparse counties lean on the population; rich counties keep their own.
If τ² collapses to zero (a singular fit) every county is fully pooled.

[bold]Commands[/bold]
  bouncepool generate    Generate synthetic bounce-rate data
  bouncepool shrinkage   Closed-form partial pooling from ML fits
  bouncepool fit         Bayesian fit (pooled/unpooled/hierarchical)
  bouncepool compare     Compare fitted models (LOO/WAIC)
  bouncepool evaluate    Diagnostics, PPC and ground-truth recovery

[bold]Quick Start[/bold]
  $ bouncepool generate
  $ bouncepool shrinkage data/bounce_rates.csv
  $ bouncepool fit data/bounce_rates.csv --model hierarchical
  $ bouncepool evaluate results/hierarchical_trace.nc --data data/bounce_rates.csv
"""
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
