# tableau_utils.py
import numpy as np
from fractions import Fraction
from tabulate import tabulate


def limit_fraction(value, fraction_digits=3):
    """Limit the number of digits in a fraction's numerator and denominator."""
    if value is None or abs(float(value)) < 1e-10:
        return Fraction(0)

    try:
        frac = Fraction(value) if not isinstance(value, Fraction) else value
    except (TypeError, ValueError):
        return Fraction(0)

    max_value = 10 ** fraction_digits - 1
    n, d = frac.numerator, frac.denominator

    if abs(n) > max_value or abs(d) > max_value:
        return Fraction(float(frac)).limit_denominator(max_value)
    return frac


def convert_to_fraction(value, fraction_digits=3, force_float=False):
    """
    Convert a decimal value to a fraction string or formatted float.

    Args:
        value: The numerical value to convert.
        fraction_digits: Max digits for numerator/denominator or float precision.
        force_float: If True, always return formatted float.

    Returns:
        Formatted string representation.
    """
    try:
        float_value = float(value)
        if force_float:
            return f"{float_value:.{fraction_digits}f}"

        frac = limit_fraction(Fraction(float_value), fraction_digits)
        num, den = frac.numerator, frac.denominator

        # Fall back to a float when the fraction stays too long
        max_value = 10 ** fraction_digits
        if abs(num) > max_value or den > max_value:
            return f"{float_value:.{fraction_digits}f}"
        return str(frac)

    except (ValueError, TypeError, OverflowError):
        return str(value)  # Return original if conversion fails


def tableau_headers(n_vars, n_constraints):
    """Column names of a tableau: z, decision variables, slacks, RHS."""
    headers = ["z"]
    headers.extend(f"x{i + 1}" for i in range(n_vars))
    headers.extend(f"s{i + 1}" for i in range(n_constraints))
    headers.append("RHS")
    return headers


def format_tableau(tableau, n_vars, use_fractions=False, fraction_digits=3):
    """Render a tableau as a text table with labelled rows and columns."""
    tableau = np.asarray(tableau, dtype=float)
    n_rows, n_cols = tableau.shape
    n_constraints = n_rows - 1

    headers = tableau_headers(n_vars, n_constraints)
    if len(headers) != n_cols:
        raise ValueError(
            f"Tableau has {n_cols} columns, expected {len(headers)} for {n_vars} variables "
            f"and {n_constraints} constraints"
        )

    rows = []
    for i in range(n_rows):
        label = "z" if i == 0 else f"R{i}"
        if use_fractions:
            values = [convert_to_fraction(val, fraction_digits) for val in tableau[i]]
        else:
            values = list(tableau[i])
        rows.append([label] + values)

    return tabulate(rows, headers=[""] + headers, floatfmt=".4f")


def create_example_production():
    """Create the 3-variable production example (Maximize), optimum 2,545,000"""
    # Maximize: z = 20000x1 + 45000x2 + 85000x3
    # Subject to:
    #   10x1 + 15x2 + 10x3 <= 720
    #   13x1 +  5x2 +  5x3 <= 680
    #   20x1 +  5x2 + 10x3 <= 550
    #                   x3 <= 7
    #   x1, x2, x3 >= 0
    c = np.array([20000.0, 45000.0, 85000.0])
    A = np.array([
        [10.0, 15.0, 10.0],
        [13.0, 5.0, 5.0],
        [20.0, 5.0, 10.0],
        [0.0, 0.0, 1.0],
    ])
    b = np.array([720.0, 680.0, 550.0, 7.0])
    return c, A, b


def create_example_2d():
    """Create a simple example 2D LP problem (Maximize)"""
    # Maximize: z = 7x1 + 5x2
    # Subject to:
    #   2x1 + 3x2 <= 90
    #   3x1 + 2x2 <= 120
    #   x1, x2 >= 0
    # Optimal: x1=36, x2=6, z = 282
    c = np.array([7.0, 5.0])
    A = np.array([
        [2.0, 3.0],
        [3.0, 2.0],
    ])
    b = np.array([90.0, 120.0])
    return c, A, b


def create_random_feasible_problem(n_vars, n_constraints, seed=None):
    """
    Random bounded problem with a feasible all-slack start. Coefficients are
    strictly positive so every variable is limited by every constraint.
    """
    rng = np.random.default_rng(seed)
    c = rng.random(n_vars) + 0.1
    A = rng.random((n_constraints, n_vars)) + 0.1
    # Ensure feasibility by making b large enough
    b = np.sum(A, axis=1) + 1.0
    return c, A, b
