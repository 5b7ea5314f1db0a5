"""Physical constants and unit conversions."""

import numpy as np

# Physical constants
PHYSICAL_CONSTANTS = {
    # Vacuum permeability
    'mu_0': 4*np.pi*1e-7,  # H/m

    # Gyromagnetic ratio gamma_0 = mu_0 * gamma_e
    'gamma_0': 2.210173e5,  # m/(A·s)
    'gamma_e': 1.76085963e11,  # rad/(s·T)

    # Permalloy (Ni80Fe20)
    'Ms_permalloy': 860e3,  # A/m
    'A_ex_permalloy': 13e-12,  # J/m
}

# Unit conversion factors
UNIT_CONVERSIONS = {
    # Magnetic field
    'T_to_Oe': 1e4,
    'Oe_to_A/m': 1e3 / (4*np.pi),
    'kA/m_to_A/m': 1e3,

    # Length
    'nm_to_m': 1e-9,

    # Time
    'ps_to_s': 1e-12,
    'ns_to_s': 1e-9,
}


def convert_units(value, from_unit: str, to_unit: str) -> float:
    """
    Convert between different units.

    Args:
        value: Value to convert
        from_unit: Source unit
        to_unit: Target unit

    Returns:
        Converted value
    """
    conversion_key = f"{from_unit}_to_{to_unit}"

    if conversion_key in UNIT_CONVERSIONS:
        return value * UNIT_CONVERSIONS[conversion_key]
    else:
        # Try reverse conversion
        reverse_key = f"{to_unit}_to_{from_unit}"
        if reverse_key in UNIT_CONVERSIONS:
            return value / UNIT_CONVERSIONS[reverse_key]
        else:
            raise ValueError(f"Unknown unit conversion: {from_unit} to {to_unit}")


def reduced_time_to_seconds(t_reduced: float, Ms: float = PHYSICAL_CONSTANTS['Ms_permalloy']) -> float:
    """
    Convert reduced time to seconds.

    The integrator works in units of 1 / (gamma_0 Ms), with fields scaled by
    Ms. A reduced step of 0.01 in permalloy is about 53 fs.
    """
    return t_reduced / (PHYSICAL_CONSTANTS['gamma_0'] * Ms)


def seconds_to_reduced_time(t_seconds: float, Ms: float = PHYSICAL_CONSTANTS['Ms_permalloy']) -> float:
    """Inverse of ``reduced_time_to_seconds``."""
    return t_seconds * PHYSICAL_CONSTANTS['gamma_0'] * Ms


def field_to_reduced(H: float, Ms: float = PHYSICAL_CONSTANTS['Ms_permalloy']) -> float:
    """Scale a field in A/m by the saturation magnetization."""
    return H / Ms
