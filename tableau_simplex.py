import logging
import warnings
from collections import namedtuple

import numpy as np
from scipy.optimize import linprog

from tableau_utils import format_tableau

logger = logging.getLogger(__name__)

# Entries of the objective row must drop below -TOLERANCE to enter the basis
TOLERANCE = 1e-10
# Smallest coefficient accepted as a pivot value
PIVOT_TOLERANCE = 1e-12


# Custom Exception Classes for better error handling
class SimplexError(Exception):
    """Base class for simplex-related errors."""
    pass

class InvalidDimensionsError(SimplexError, ValueError):
    """Raised when the problem data or a pivot coordinate does not fit the tableau."""
    pass

class UnboundedProblemError(SimplexError):
    """Raised when the linear programming problem is unbounded."""
    pass

class IterationLimitError(SimplexError):
    """Raised when the pivot cap is reached before an optimal tableau is found."""
    pass

class NumericalInstabilityError(SimplexError):
    """Raised when numerical instability is detected that may compromise results."""
    pass

class TableauCorruptionError(SimplexError):
    """Raised when the tableau appears to be in an invalid state."""
    pass


# Outcomes of the pivot selection
PIVOT = "pivot"
OPTIMAL = "optimal"
UNBOUNDED = "unbounded"

# Solver states
RUNNING = "running"
ITERATION_LIMIT = "iteration_limit"

PivotResult = namedtuple("PivotResult", ["status", "column", "row"])


def _validate_inputs(c, A, b):
    """Validate the shapes and values of the raw problem data."""
    if A.ndim != 2:
        raise InvalidDimensionsError(
            f"Constraint matrix A must be two-dimensional, got {A.ndim} dimension(s)"
        )
    if c.ndim != 1 or b.ndim != 1:
        raise InvalidDimensionsError("Objective vector c and requirement vector b must be one-dimensional")

    m, n = A.shape
    if m == 0:
        raise InvalidDimensionsError("Problem must have at least one constraint.")
    if n == 0:
        raise InvalidDimensionsError("Problem must have at least one variable.")

    dimension_errors = []
    if len(b) != m:
        dimension_errors.append(f"Requirement vector b length ({len(b)}) does not match number of constraints ({m})")
    if len(c) != n:
        dimension_errors.append(f"Objective vector c length ({len(c)}) does not match number of variables ({n})")
    if dimension_errors:
        raise InvalidDimensionsError("; ".join(dimension_errors))

    for name, array in [("A", A), ("b", b), ("c", c)]:
        if not np.all(np.isfinite(array)):
            raise ValueError(f"Array {name} contains non-finite values (NaN or Inf)")

    if np.any(b < 0):
        raise ValueError("Requirement vector b must be non-negative; the all-slack basis would be infeasible")


def _check_tableau_shape(tableau):
    if tableau.ndim != 2:
        raise InvalidDimensionsError(f"Tableau must be two-dimensional, got {tableau.ndim} dimension(s)")
    n_rows, n_cols = tableau.shape
    if n_rows < 2 or n_cols < 3:
        raise InvalidDimensionsError(f"Tableau of shape {tableau.shape} has no constraint row or no variable column")


def create_augmented_tableau(c, A, b):
    """
    Build the initial tableau for the problem:
    Maximize c^T x
    Subject to Ax <= b, x >= 0

    The tableau has m + 1 rows and n + m + 2 columns: a normalizing column,
    the decision columns, one slack column per constraint and the
    requirement (RHS) column.

    :param c: objective coefficients, length n
    :param A: constraint coefficients, shape (m, n)
    :param b: requirements, length m, non-negative
    :return: numpy array holding the tableau
    """
    c = np.asarray(c, dtype=float)
    A = np.asarray(A, dtype=float)
    b = np.asarray(b, dtype=float)
    _validate_inputs(c, A, b)

    m, n = A.shape
    tableau = np.zeros((m + 1, n + m + 2), dtype=float)

    # Objective row
    tableau[0, 0] = 1.0
    tableau[0, 1:n + 1] = -c

    # Constraint rows, slack identity block and requirements
    tableau[1:, 1:n + 1] = A
    tableau[1:, n + 1:n + m + 1] = np.eye(m)
    tableau[1:, -1] = b

    return tableau


def find_entering_column(tableau):
    """
    Choose the entering variable by Dantzig's rule: the most negative
    objective-row entry, first occurrence on ties. Returns None when no entry
    is negative.
    """
    objective_row = tableau[0, 1:-1]
    if not np.any(objective_row < -TOLERANCE):
        return None
    # argmin keeps the first index among equal minima
    return int(np.argmin(objective_row)) + 1


def find_leaving_row(tableau, column):
    """
    Choose the leaving variable with the minimum ratio test. Only rows with a
    strictly positive coefficient in the entering column are candidates.
    Returns None when no row limits the entering variable.
    """
    best_row = None
    best_ratio = None

    for i in range(1, tableau.shape[0]):
        coefficient = tableau[i, column]
        if coefficient <= PIVOT_TOLERANCE:
            continue

        rhs_entry = tableau[i, -1]
        if -TOLERANCE <= rhs_entry < 0:
            rhs_entry = 0.0
        ratio = rhs_entry / coefficient
        if ratio < 0:
            continue

        if best_ratio is None or ratio < best_ratio:
            best_row, best_ratio = i, ratio

    return best_row


def find_next_pivot(tableau):
    """
    Select the next pivot of the tableau.

    :return: PivotResult with status PIVOT (column and row set), OPTIMAL, or
        UNBOUNDED (column set to the entering column that cannot be limited)
    """
    tableau = np.asarray(tableau, dtype=float)
    _check_tableau_shape(tableau)

    column = find_entering_column(tableau)
    if column is None:
        return PivotResult(OPTIMAL, None, None)

    row = find_leaving_row(tableau, column)
    if row is None:
        return PivotResult(UNBOUNDED, column, None)

    return PivotResult(PIVOT, column, row)


def apply_row_operations(tableau, column, row):
    """
    Eliminate the entering column from every row except the pivot row.

    The pivot row is kept as it is; every other row i becomes
    row_i + (pivot_row / pivot_row[column]) * -row_i[column].
    The input tableau is not modified.
    """
    table = np.array(tableau, dtype=float)
    _check_tableau_shape(table)
    n_rows, n_cols = table.shape

    if not 1 <= row < n_rows:
        raise InvalidDimensionsError(f"Pivot row {row} is outside constraint rows 1..{n_rows - 1}")
    if not 1 <= column < n_cols - 1:
        raise InvalidDimensionsError(f"Pivot column {column} is outside variable columns 1..{n_cols - 2}")

    pivot_row = table[row, :].copy()
    pivot_value = pivot_row[column]
    if abs(pivot_value) < PIVOT_TOLERANCE:
        raise NumericalInstabilityError(
            f"Pivot element {pivot_value:.2e} at ({row}, {column}) is too small."
        )

    for i in range(n_rows):
        if i == row:
            continue
        # The entry of the entering column we want to drive to 0
        target_entry = table[i, column]
        table[i, :] += (pivot_row / pivot_value) * -target_entry

    return table


def optimal_value(tableau):
    """Objective value stored in the tableau (row 0, last column)."""
    return float(tableau[0, -1])


def find_basic_columns(tableau):
    """
    Identify the basic column of each constraint row from a bare tableau.
    A column is basic when it has exactly one non-zero constraint entry and a
    zero objective entry. Returns dict mapping row index to column index.
    """
    tableau = np.asarray(tableau, dtype=float)
    basis_map = {}
    n_cols = tableau.shape[1]

    for j in range(1, n_cols - 1):
        col = tableau[:, j]
        if abs(col[0]) > TOLERANCE:
            continue
        nonzero_rows = np.where(np.abs(col[1:]) > TOLERANCE)[0] + 1
        if len(nonzero_rows) != 1:
            continue
        row = int(nonzero_rows[0])
        if row not in basis_map:
            basis_map[row] = j

    return basis_map


def extract_solution(tableau, n_vars, basis=None):
    """
    Read the decision variable values from a tableau.

    :param tableau: the (final) tableau
    :param n_vars: number of decision variables
    :param basis: optional sequence, basis[i] is the column owning row i + 1;
        detected from the tableau when omitted
    :return: numpy array of length n_vars
    """
    tableau = np.asarray(tableau, dtype=float)
    if basis is None:
        basis_map = find_basic_columns(tableau)
    else:
        basis_map = {row: column for row, column in enumerate(basis, start=1)}

    solution = np.zeros(n_vars)
    for row, column in basis_map.items():
        if not 1 <= column <= n_vars:
            continue
        # Pivot rows are never rescaled, so divide by the basic entry
        value = tableau[row, -1] / tableau[row, column]
        if not np.isfinite(value):
            raise TableauCorruptionError(f"Non-finite value {value} in x_{column}")
        if value < -TOLERANCE:
            warnings.warn(f"Basic variable x_{column} has negative value {value:.2e}; clipping to 0.", UserWarning)
        solution[column - 1] = max(0.0, value)

    solution[np.abs(solution) < 1e-12] = 0.0
    return solution


def default_iteration_limit(m, n):
    """Pivot cap used when none is given."""
    return max(100, 10 * (m + n))


class PrimalSimplex:
    def __init__(self, c, A, b, verbose=False, max_iterations=None, use_fractions=False, fraction_digits=3):
        """
        Initialize the simplex method for the problem:
        Maximize c^T x
        Subject to Ax <= b, x >= 0

        :param c: numpy array, coefficients of the objective function
        :param A: numpy matrix, coefficients of the constraints
        :param b: numpy array, right-hand side of the constraints
        :param verbose: bool, print the tableau after every pivot
        :param max_iterations: int, pivot cap (default_iteration_limit when None)
        :param use_fractions: bool, whether to print the tableau using fractions
        :param fraction_digits: int, digit limit for printed fractions
        """
        self.tableau = create_augmented_tableau(c, A, b)
        self.c = np.array(c, dtype=float)
        self.A = np.array(A, dtype=float)
        self.b = np.array(b, dtype=float)
        self.m, self.n = self.A.shape

        if max_iterations is None:
            max_iterations = default_iteration_limit(self.m, self.n)
        elif max_iterations < 0:
            raise ValueError(f"max_iterations must be non-negative, got {max_iterations}")
        self.max_iterations = max_iterations

        self.verbose = verbose
        self.use_fractions = use_fractions
        self.fraction_digits = fraction_digits

        self.status = RUNNING
        self.iterations = 0
        # basis[i] is the column of the basic variable owning row i + 1
        self.basis = list(range(self.n + 1, self.n + self.m + 1))
        self.pivots = []
        self.tableaus = [self.tableau.copy()]
        self.objective_history = [optimal_value(self.tableau)]
        self.path_vertices = []
        self._store_current_vertex()

    def get_basis_variable_indices(self):
        """Returns dict mapping tableau row index to basic column index."""
        return {row: column for row, column in enumerate(self.basis, start=1)}

    def _store_current_vertex(self):
        """Extracts and stores the current vertex values."""
        vertex = extract_solution(self.tableau, self.n, self.basis)
        # Avoid duplicates
        if not self.path_vertices or not np.allclose(vertex, self.path_vertices[-1], atol=1e-6):
            self.path_vertices.append(vertex)

    def _get_variable_name(self, column):
        """Helper to get the name of a variable by its tableau column."""
        if 1 <= column <= self.n:
            return f"x{column}"
        return f"s{column - self.n}"

    def _print_tableau(self, title):
        """Print the simplex tableau with consistent formatting."""
        print(f"\n{title}:")
        print(format_tableau(self.tableau, self.n, use_fractions=self.use_fractions,
                             fraction_digits=self.fraction_digits))
        basis = [self._get_variable_name(column) for column in self.basis]
        print("Current Basis:", basis)

    def _check_tableau_integrity(self):
        """Check tableau for corruption (NaN/Inf values)."""
        if not np.all(np.isfinite(self.tableau)):
            rows, cols = np.where(~np.isfinite(self.tableau))
            first_bad_row, first_bad_col = rows[0], cols[0]
            bad_value = self.tableau[first_bad_row, first_bad_col]
            raise TableauCorruptionError(
                f"Tableau corruption: non-finite value {bad_value} at ({first_bad_row}, {first_bad_col}). "
                f"Total {len(rows)} corrupted entries."
            )

    def _pivot(self, column, row):
        """Exchange the basic variable of `row` with the variable of `column`."""
        self.tableau = apply_row_operations(self.tableau, column, row)
        self.basis[row - 1] = column
        self.pivots.append((column, row))
        self.iterations += 1

        try:
            self._check_tableau_integrity()
        except TableauCorruptionError as e:
            raise TableauCorruptionError(
                f"Tableau corruption after pivot at iteration {self.iterations}. "
                f"Pivot: row {row}, column {column}."
            ) from e

        self.tableaus.append(self.tableau.copy())
        self.objective_history.append(optimal_value(self.tableau))
        self._store_current_vertex()

        logger.debug("Pivot %d: column %d enters, row %d leaves, objective %.6g",
                     self.iterations, column, row, self.objective_history[-1])
        if self.verbose:
            print(f"\nPivot (column {column}, row {row})")
            self._print_tableau(f"Iteration {self.iterations}")

    def run(self):
        """
        Pivot until the tableau is optimal.

        :return: copy of the final tableau
        :raises UnboundedProblemError: an entering column has no positive coefficient
        :raises IterationLimitError: max_iterations pivots were taken without reaching optimality
        """
        self._check_tableau_integrity()
        if self.verbose and self.iterations == 0:
            self._print_tableau("Initial tableau")

        while True:
            result = find_next_pivot(self.tableau)

            if result.status == OPTIMAL:
                self.status = OPTIMAL
                break

            if result.status == UNBOUNDED:
                self.status = UNBOUNDED
                raise UnboundedProblemError(
                    f"Problem is unbounded: {self._get_variable_name(result.column)} "
                    f"(column {result.column}) can increase without limit."
                )

            if self.iterations >= self.max_iterations:
                self.status = ITERATION_LIMIT
                raise IterationLimitError(
                    f"Maximum iterations ({self.max_iterations}) reached without convergence."
                )

            self._pivot(result.column, result.row)

        logger.debug("Optimal after %d pivot(s), objective %.6g", self.iterations, optimal_value(self.tableau))
        return self.tableau.copy()

    def solve(self):
        """
        Solve the linear programming problem using the simplex method.

        :return: (solution, optimal_value)
        """
        self.run()
        solution = extract_solution(self.tableau, self.n, self.basis)
        return solution, optimal_value(self.tableau)


def simplex_method(c, A, b, verbose=False, max_iterations=None):
    """
    Run the simplex algorithm on Maximize c^T x s.t. Ax <= b, x >= 0.

    :return: the final tableau; the optimum is at row 0, last column
    """
    solver = PrimalSimplex(c, A, b, verbose=verbose, max_iterations=max_iterations)
    return solver.run()


class SensitivityAnalysis:
    """Class for performing sensitivity analysis on the optimal solution."""

    def __init__(self, simplex_solver):
        """Initialize with a solved PrimalSimplex instance."""
        if not isinstance(simplex_solver, PrimalSimplex):
            raise TypeError(f"Expected PrimalSimplex instance, got {type(simplex_solver).__name__}")

        self.solver = simplex_solver
        if getattr(self.solver, 'tableau', None) is None or self.solver.status != OPTIMAL:
            raise ValueError("Solver must have an optimal tableau. Call solve() first.")

        self.basis_indices = list(self.solver.basis)
        self.nonbasis_indices = [j for j in range(1, self.solver.n + self.solver.m + 1)
                                 if j not in self.basis_indices]

    def shadow_prices(self):
        """Dual value of each constraint, read from the slack columns of the objective row."""
        n, m = self.solver.n, self.solver.m
        return self.solver.tableau[0, n + 1:n + m + 1].copy()

    def reduced_costs(self):
        """Objective-row entries of the decision columns."""
        return self.solver.tableau[0, 1:self.solver.n + 1].copy()

    def rhs_sensitivity_analysis(self):
        """
        Range of each requirement b_r over which the optimal basis stays feasible.
        Returns dict mapping constraint index to (lower, upper).
        """
        tableau = self.solver.tableau
        n = self.solver.n
        sensitivity_ranges = {}

        for r in range(self.solver.m):
            slack_col = n + 1 + r
            allowable_decrease = allowable_increase = float('inf')

            for row, column in enumerate(self.basis_indices, start=1):
                basic_entry = tableau[row, column]
                basic_value = tableau[row, -1] / basic_entry
                # Entry of the basis inverse for this row and constraint
                coeff = tableau[row, slack_col] / basic_entry

                if coeff > TOLERANCE:
                    allowable_decrease = min(allowable_decrease, basic_value / coeff)
                elif coeff < -TOLERANCE:
                    allowable_increase = min(allowable_increase, -basic_value / coeff)

            current_rhs = self.solver.b[r]
            lower_bound = current_rhs - allowable_decrease if allowable_decrease != float('inf') else -np.inf
            upper_bound = current_rhs + allowable_increase if allowable_increase != float('inf') else np.inf
            sensitivity_ranges[r] = (lower_bound, upper_bound)

        return sensitivity_ranges

    def format_range(self, range_tuple, var_value=None):
        """Format a sensitivity range in a readable way."""
        lower, upper = range_tuple
        lower_str = "-∞" if lower == -np.inf else f"{lower:.4f}"
        upper_str = "+∞" if upper == np.inf else f"{upper:.4f}"

        if var_value is not None:
            delta_lower = "any decrease" if lower == -np.inf else f"{var_value - lower:.4f}"
            delta_upper = "any increase" if upper == np.inf else f"{upper - var_value:.4f}"
            return f"[{lower_str}, {upper_str}] (Current: {var_value:.4f}, Δ-: {delta_lower}, Δ+: {delta_upper})"
        else:
            return f"[{lower_str}, {upper_str}]"


def solve_lp_scipy(c, A, b):
    """
    Solve the same problem with SciPy's linprog function:
    Maximize c^T x
    Subject to A x <= b, x >= 0
    """
    c, A, b = np.asarray(c, dtype=float), np.asarray(A, dtype=float), np.asarray(b, dtype=float)

    if A.ndim != 2 or A.shape[0] != len(b) or A.shape[1] != len(c):
        raise InvalidDimensionsError("Inconsistent dimensions in problem specification")

    result = linprog(-c, A_ub=A, b_ub=b, bounds=[(0, None)] * len(c), method='highs')

    if result.success:
        return result.x, -result.fun
    if result.status == 3:
        raise UnboundedProblemError("Problem is unbounded")
    raise ValueError(f"SciPy linprog failed: {result.message} (Status: {result.status})")


# Example Usage
if __name__ == "__main__":
    """
    Example problem:

        Maximize:    z = 20000x₁ + 45000x₂ + 85000x₃

        Subject to:
            10x₁ + 15x₂ + 10x₃  ≤ 720
            13x₁ +  5x₂ +  5x₃  ≤ 680
            20x₁ +  5x₂ + 10x₃  ≤ 550
                            x₃  ≤ 7
            xⱼ ≥ 0   for j = 1, 2, 3
    """
    from tableau_utils import create_example_production

    c, A, b = create_example_production()

    solver = PrimalSimplex(c, A, b, verbose=True)
    solution, value = solver.solve()
    print(f"Optimal solution: {solution}")
    print(f"Optimal value: {value}")
