"""
Copper Backscatter - Simple Example

Images a Cu block and a carbon-on-silicon film with the SEM simulator and
compares backscatter coefficients with tabulated values.

This example validates:
    - Elastic scattering and stopping power together
    - Escape bookkeeping (backscatter coefficient)
    - Image formation and export

Expected results for Cu @ 20 keV:
    - Backscatter coefficient: ~0.30 (Joy database)
    - Mean maximum depth: a few hundred nm
"""

import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from sem_mc.core.materials import get_material
from sem_mc.core.parameters import (BeamParams, DetectorParams, MonteCarloParams,
                                    ScanParams, SimulationParameters)
from sem_mc.core.sample import HomogeneousSample, LayeredSample
from sem_mc.imaging.export import png_metadata, save_image
from sem_mc.simulation.scan import run_scan


def simulate_backscatter(material: str, energy_keV: float, n_electrons: int = 500):
    """
    Backscatter coefficient of a bulk material at one beam energy.

    Parameters:
        material: Preset material name
        energy_keV: Beam energy [keV]
        n_electrons: Primaries in the single pixel

    Returns:
        (eta, mean max depth [nm])
    """
    sample = HomogeneousSample(get_material(material), 5000.0, 5000.0, 10000.0)
    params = SimulationParameters(
        beam=BeamParams(energy=energy_keV),
        scan=ScanParams(width=1, height=1),
        monte_carlo=MonteCarloParams(num_electrons=n_electrons, min_energy=500.0, seed=1),
    ).validate()

    with run_scan(sample, params) as results:
        return results.backscatter_coefficient, results.avg_penetration_depth


def image_film(save_path=None):
    """
    Secondary-electron image of a 20 nm carbon film on silicon.

    Parameters:
        save_path: Where to write the PNG (optional)
    """
    print(f"\n{'='*70}")
    print(f"C/Si film image")
    print(f"{'='*70}\n")

    sample = LayeredSample([(get_material('C'), 20.0), (get_material('Si'), 2000.0)],
                           2000.0, 2000.0)
    params = SimulationParameters(
        beam=BeamParams(energy=5.0, spot_size=5.0),
        scan=ScanParams(width=16, height=16, pixel_size=20.0),
        monte_carlo=MonteCarloParams(num_electrons=20, min_energy=200.0, seed=3,
                                     n_workers=4),
        detector=DetectorParams(signal_type='secondary', noise_model='poisson'),
    ).validate()

    results = run_scan(sample, params, verbose=True)
    if save_path:
        save_image(results.image, save_path, metadata=png_metadata(params))
        print(f"Image saved: {save_path}")

    plt.figure(figsize=(6, 6))
    plt.imshow(results.image.pixels, cmap='gray', vmin=0, vmax=255)
    plt.title('SE image: 20 nm C on Si @ 5 keV', fontsize=14, fontweight='bold')
    plt.axis('off')
    plt.tight_layout()
    results.release()
    return plt.gcf()


def compare_materials(energy_keV: float = 20.0, n_electrons: int = 500):
    """
    Backscatter coefficient against atomic number.

    Parameters:
        energy_keV: Beam energy [keV]
        n_electrons: Primaries per material
    """
    # (material, measured eta at 20 keV)
    test_cases = [
        ('C', 0.06),
        ('Al', 0.15),
        ('Si', 0.16),
        ('Cu', 0.30),
        ('Au', 0.50),
    ]

    results = []
    for name, expected in test_cases:
        eta, depth = simulate_backscatter(name, energy_keV, n_electrons)
        results.append((name, get_material(name).atomic_number, eta, expected))
        diff = eta - expected
        status = "✓ PASS" if abs(diff) < 0.08 else "✗ FAIL"
        print(f"{status} {name:3s}: eta = {eta:.3f} (expected {expected:.2f}, "
              f"{diff:+.3f}), <depth> = {depth:7.1f} nm")

    Z = np.array([r[1] for r in results])
    plt.figure(figsize=(10, 6))
    plt.plot(Z, [r[2] for r in results], 'bo-', linewidth=2, label='Monte Carlo')
    plt.plot(Z, [r[3] for r in results], 'g^--', linewidth=1.5, label='Measured')
    plt.xlabel('Atomic number Z', fontsize=14, fontweight='bold')
    plt.ylabel('Backscatter coefficient', fontsize=14, fontweight='bold')
    plt.title(f'Backscatter vs Z @ {energy_keV} keV', fontsize=16, fontweight='bold')
    plt.grid(True, alpha=0.3, linestyle='--')
    plt.legend(fontsize=12, loc='upper left')
    plt.tight_layout()
    return results


# ============================================================================
# Main Execution
# ============================================================================

if __name__ == "__main__":
    print("\n" + "="*70)
    print("Example 1: Cu @ 20 keV")
    print("="*70)

    eta, depth = simulate_backscatter('Cu', 20.0, n_electrons=1000)
    print(f"  Backscatter coefficient: {eta:.3f} (expected ~0.30)")
    print(f"  Mean maximum depth: {depth:.1f} nm")

    print("\n" + "="*70)
    print("Example 2: Backscatter vs atomic number")
    print("="*70)

    compare_materials()
    plt.show()

    print("\n" + "="*70)
    print("Example 3: Thin film image")
    print("="*70)

    image_film(save_path='c_on_si_se.png')
    plt.show()

    print("\n" + "="*70)
    print("All examples complete!")
    print("="*70 + "\n")
