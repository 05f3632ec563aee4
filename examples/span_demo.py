"""
Service Flow Demonstration Script

This example walks through a complete spanflow run:
1. Generating a synthetic landscape
2. Configuring the flow model
3. Running the analysis pipeline
4. Inspecting network and spatial statistics
5. Exporting results to DataFrames

Note: the landscape is synthetic. Replace it with your own supply, demand
and resistance rasters for a real study area.
"""

import sys
from pathlib import Path

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from spanflow import SpanAnalysis, SpanConfig
from spanflow.analysis.export import export_bundle_to_dataframes
from spanflow.logger import configure_logging
from spanflow.spatial.synthetic import generate_landscape


def demo_landscape():
    """Generate a reproducible landscape with a few barrier cells."""
    print("=" * 60)
    print("DEMO 1: Synthetic Landscape")
    print("=" * 60)

    grid = generate_landscape(shape=(30, 30), seed=7, n_supply_patches=3, n_demand_patches=2,
                              barrier_fraction=0.02)
    print(f"   > Grid shape: {grid.shape}")
    print(f"   > Total supply: {grid.supply.sum():.1f}")
    print(f"   > Total demand: {grid.demand.sum():.1f}")
    print(f"   > Impassable cells: {int(np.isinf(grid.resistance).sum())}")
    return grid


def demo_run(grid, benefit_type):
    """Run the pipeline for one benefit type and print the flow summary."""
    print("\n" + "=" * 60)
    print(f"DEMO 2: Flow Analysis ({benefit_type})")
    print("=" * 60)

    config = SpanConfig(decay_k=0.05, benefit_type=benefit_type, source_threshold=0.2,
                        use_threshold=0.2, timeout_sec=120.0)
    bundle = SpanAnalysis(config).run(grid)

    summary = bundle.summary
    print(f"   > Theoretical flow: {summary.total_theoretical:.2f}")
    print(f"   > Actual flow:      {summary.total_actual:.2f}")
    print(f"   > Blocked flow:     {summary.total_blocked:.2f}")
    print(f"   > Used flow:        {summary.total_used:.2f}")
    print(f"   > Delivery ratio:   {summary.delivery_ratio:.3f}")
    return bundle


def demo_network(bundle):
    """Print graph and spatial descriptors."""
    print("\n" + "=" * 60)
    print("DEMO 3: Network and Spatial Structure")
    print("=" * 60)

    for name, value in bundle.metrics.scalars().items():
        print(f"   > {name:<20s} {value:.4g}")

    moran = bundle.spatial.moran
    print(f"\n   Moran's I = {moran.I:.3f} (z = {moran.z_score:.2f}, p = {moran.p_value:.3g})")
    print(f"   Hot spots: {bundle.spatial.getis_ord.n_hot}, cold spots: {bundle.spatial.getis_ord.n_cold}")

    if bundle.bottlenecks:
        print("\n   Top bottleneck cells:")
        for b in bundle.bottlenecks:
            print(f"     {b.position}: score {b.score:.3f}")


def demo_export(bundle):
    """Convert the bundle to DataFrames."""
    print("\n" + "=" * 60)
    print("DEMO 4: Export")
    print("=" * 60)

    frames = export_bundle_to_dataframes(bundle)
    for name, df in frames.items():
        print(f"   > {name}: {len(df)} rows")
    print(frames["summary"].head(10).to_string(index=False))


def main():
    configure_logging()
    grid = demo_landscape()
    rival = demo_run(grid, "rival")
    demo_run(grid, "non-rival")
    demo_network(rival)
    demo_export(rival)
    print("\n[OK] Demonstration complete")


if __name__ == "__main__":
    main()
