import numpy as np
from loguru import logger
from scipy.optimize import curve_fit


class FitModel:
    """Base for regression models: set data, guess, fit, report."""

    param_names: list[str] = []
    param_units: list[str] = []

    def __init__(self):
        pass

    def set_data(self, xdata, ydata, weights=None):
        """Load the points to fit, dropping any that are not finite."""
        xdata = np.asarray(xdata, dtype=float)
        ydata = np.asarray(ydata, dtype=float)
        if weights is None:
            weights = np.ones_like(xdata)
        weights = np.asarray(weights, dtype=float)

        keep = np.isfinite(xdata) & np.isfinite(ydata) & np.isfinite(weights)
        keep &= weights > 0
        if not np.all(keep):
            logger.debug("Dropping {} non-finite point(s) before fitting", np.sum(~keep))
        self.xdata = xdata[keep]
        self.ydata = ydata[keep]
        self.weights = weights[keep]
        if hasattr(self, "p0"):
            del self.p0

    @property
    def n_points(self) -> int:
        return len(self.xdata)

    def fit(self):
        if self.n_points < len(self.param_names):
            raise ValueError(
                f"{type(self).__name__} needs {len(self.param_names)} points, "
                + f"got {self.n_points}"
            )
        if not hasattr(self, "p0"):
            self.guess_parameters()

        logger.trace("Fit initial guess: {}", self.p0)
        self.fit_results, pcov = curve_fit(
            self.function,
            self.xdata,
            self.ydata,
            self.p0,
            sigma=1.0 / np.sqrt(self.weights),
            absolute_sigma=True,
        )
        # get the fit error
        self.fit_error = np.sqrt(np.diag(pcov))
        return self.fit_results

    def guess_parameters(self, **kwargs):
        raise NotImplementedError

    def function(self, x, *params):
        raise NotImplementedError

    def get_fit_results_txt(self):
        results = "Fit results:\n"
        for name, val, error, unit in zip(
            self.param_names, self.fit_results, self.fit_error, self.param_units
        ):
            results += f"{name}: {val:0.5e} ± {error:0.5e} {unit}\n"
        return results


class WeightedLinear(FitModel):
    """y = offset + slope * x, each point weighted (1/variance, or 1)."""

    param_names = ["offset", "slope"]
    param_units = ["V", "V/V"]

    def guess_parameters(self, **kwargs):
        # closed-form weighted least squares, exact for noise-free data
        w = self.weights
        x = self.xdata
        y = self.ydata
        wsum = np.sum(w)
        xbar = np.sum(w * x) / wsum
        ybar = np.sum(w * y) / wsum
        dx = x - xbar
        sxx = np.sum(w * dx * dx)
        if sxx == 0:
            raise ValueError("all x values are equal, slope is undetermined")
        slope = np.sum(w * dx * (y - ybar)) / sxx
        offset = ybar - slope * xbar

        self.p0 = [offset, slope]
        return self.p0

    def function(self, x, offset, slope):
        return offset + slope * x
