import warnings

import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from unittest import TestCase

from scipy.stats import norm

from dsgefilter import FilterState, StateSpaceModel, kalman_filter, kalman_step
from dsgefilter.errors import ConfigurationError, DomainError, EmptyDataWarning, NumericalError


def ar1_model(rho=0.85, sigma=1.0):
    return StateSpaceModel(TT=rho, RR=1.0, CC=0.0, QQ=sigma**2, ZZ=1.0, DD=0.0, HH=0.0)


def simulate_ar1(rho, sigma, nobs, seed=0):
    rng = np.random.default_rng(seed)
    y = np.zeros(nobs)
    y[0] = rng.normal(scale=sigma / np.sqrt(1 - rho**2))
    for t in range(1, nobs):
        y[t] = rho * y[t - 1] + sigma * rng.normal()
    return y


class TestFilter(TestCase):

    def setUp(self):
        self.model = StateSpaceModel(TT=0.5, RR=1.0, CC=0.0, QQ=1.0, ZZ=1.0, DD=0.0, HH=1.0)
        self.y = np.array([[1.0, -0.5]])

    def test_hand_computed(self):
        out = kalman_filter(self.y, self.model)

        assert_allclose(out.z0, [0.0])
        assert_allclose(out.P0, [[4.0 / 3.0]])

        # period 1: P_{1|0} = 0.25 * 4/3 + 1 = 4/3, V = 7/3
        assert_allclose(out.pred[:, 0], [0.0])
        assert_allclose(out.vpred[:, :, 0], [[4.0 / 3.0]])
        self.assertAlmostEqual(out.filt[0, 0], (4.0 / 3.0) / (4.0 / 3.0 + 1.0) * 1.0)
        self.assertAlmostEqual(out.filt[0, 0], 0.5714285714285714)
        assert_allclose(out.vfilt[:, :, 0], [[4.0 / 7.0]])

        # period 2: z_{2|1} = 2/7, P_{2|1} = 8/7, V = 15/7
        assert_allclose(out.pred[:, 1], [2.0 / 7.0])
        assert_allclose(out.vpred[:, :, 1], [[8.0 / 7.0]])
        dy = -0.5 - 2.0 / 7.0
        assert_allclose(out.yprederror, [[1.0, dy]])
        assert_allclose(out.ystdprederror, [[1.0 / np.sqrt(7.0 / 3.0), dy / np.sqrt(15.0 / 7.0)]])

        byhand = (norm.logpdf(1.0, scale=np.sqrt(7.0 / 3.0))
                  + norm.logpdf(-0.5, loc=2.0 / 7.0, scale=np.sqrt(15.0 / 7.0)))
        self.assertAlmostEqual(out.log_likelihood, byhand)
        assert_allclose(out.zend, out.filt[:, -1])
        assert_allclose(out.Pend, out.vfilt[:, :, -1])

    def test_ar1(self):
        rho, sigma = 0.85, 1.0
        yy = simulate_ar1(rho, sigma, 200)
        yyhat = np.r_[0, rho * yy[:-1]]

        sig = sigma * np.ones_like(yyhat)
        sig[0] = sig[0] / np.sqrt(1. - rho**2)

        byhand = np.sum(norm.logpdf(yy, loc=yyhat, scale=sig))
        lik0 = ar1_model(rho, sigma).log_lik(yy)
        self.assertAlmostEqual(byhand, lik0)

        out = kalman_filter(yy, ar1_model(rho, sigma))
        assert_allclose(out.marginal_loglh, norm.logpdf(yy, loc=yyhat, scale=sig))
        assert_allclose(out.ystdprederror[0], (yy - yyhat) / sig)

    def test_missing(self):
        rho, sigma = 0.85, 1.0
        model = ar1_model(rho, sigma)
        y = simulate_ar1(rho, sigma, 50, seed=1)

        with warnings.catch_warnings(record=True) as w:
            warnings.simplefilter("always")
            ll = model.log_lik(np.nan * np.ones_like(y))
        self.assertAlmostEqual(ll, 0)
        self.assertTrue(any(issubclass(x.category, EmptyDataWarning) for x in w))

        sig = sigma * np.ones_like(y)
        sig[0] = sigma / np.sqrt(1. - rho**2)
        yyhat = np.r_[0, rho * y[:-1]]

        byhand = norm.logpdf(y[:-2], loc=yyhat[:-2], scale=sig[:-2]).sum()
        byhand += norm.logpdf(y[-1], loc=rho**2 * y[-3], scale=np.sqrt(1 + rho**2) * sig[-1])
        y[-2] = np.nan

        out = kalman_filter(y, model)
        self.assertAlmostEqual(out.log_likelihood, byhand)
        self.assertEqual(out.marginal_loglh[-2], 0.0)
        self.assertTrue(np.isnan(out.yprederror[0, -2]))
        self.assertTrue(np.isnan(out.ystdprederror[0, -2]))
        # no update when nothing is observed
        assert_allclose(out.filt[:, -2], out.pred[:, -2])
        assert_allclose(out.vfilt[:, :, -2], out.vpred[:, :, -2])

    def test_all_missing_can_raise(self):
        y = np.full((1, 5), np.nan)
        with self.assertRaises(DomainError) as cm:
            kalman_filter(y, self.model, settings={'on_empty_data': 'raise'})
        out = cm.exception.output
        self.assertIsNotNone(out)
        self.assertEqual(out.log_likelihood, 0.0)
        assert_allclose(out.pred[:, -1], [0.0])

    def test_sum_of_marginal_likelihoods(self):
        rng = np.random.default_rng(3)
        y = rng.normal(size=(1, 30))
        out = kalman_filter(y, self.model)
        self.assertEqual(out.marginal_loglh.shape, (30,))
        self.assertAlmostEqual(out.log_likelihood, np.sum(out.marginal_loglh))

    def test_supplied_initial_conditions(self):
        z0 = np.array([0.3])
        P0 = np.array([[2.0]])
        out = kalman_filter(self.y, self.model, z0, P0)
        assert_array_equal(out.z0, z0)
        assert_array_equal(out.P0, P0)
        assert_allclose(out.pred[:, 0], [0.15])
        assert_allclose(out.vpred[:, :, 0], [[1.5]])

    def test_empty_initial_conditions_use_stationary(self):
        out = kalman_filter(self.y, self.model, np.zeros(0), np.zeros((0, 0)))
        assert_allclose(out.P0, [[4.0 / 3.0]])

    def test_bad_initial_conditions(self):
        with self.assertRaises(ConfigurationError):
            kalman_filter(self.y, self.model, np.zeros(2), np.eye(2))

    def test_not_positive_definite(self):
        model = StateSpaceModel(TT=0.5, RR=1.0, CC=0.0, QQ=1.0, ZZ=0.0, DD=0.0, HH=-1.0)
        with self.assertRaises(NumericalError) as cm:
            kalman_filter(self.y, model)
        self.assertEqual(cm.exception.period, 0)

        with self.assertRaises(NumericalError):
            kalman_filter(self.y, model, allout=False)

        with self.assertRaises(NumericalError):
            kalman_filter(self.y, model, allout=False, settings={'use_numba': False})

    def test_nonfinite_transition(self):
        for value in (np.nan, np.inf):
            model = StateSpaceModel(TT=value, RR=1.0, CC=0.0, QQ=1.0, ZZ=1.0, DD=0.0, HH=1.0)
            with self.assertRaises(NumericalError) as cm:
                kalman_filter(self.y, model)
            self.assertIn('TT', str(cm.exception))
            self.assertEqual(cm.exception.period, 0)

            with self.assertRaises(NumericalError):
                kalman_filter(self.y, model, allout=False)

    def test_nonfinite_matrix_in_later_regime(self):
        bad = StateSpaceModel(TT=0.5, RR=1.0, CC=0.0, QQ=1.0, ZZ=1.0, DD=np.nan, HH=1.0)
        with self.assertRaises(NumericalError) as cm:
            kalman_filter(self.y, [(range(0, 1), self.model), (range(1, 2), bad)])
        self.assertEqual(cm.exception.period, 1)

    def test_infinite_observation(self):
        for value in (np.inf, -np.inf):
            with self.assertRaises(ConfigurationError):
                kalman_filter(np.array([[1.0, value]]), self.model)

    def test_nonfinite_initial_conditions(self):
        with self.assertRaises(ConfigurationError):
            kalman_filter(self.y, self.model, np.array([np.nan]), np.eye(1))

    def test_step_with_nonfinite_state(self):
        state = FilterState(np.array([np.inf]), np.eye(1))
        with self.assertRaises(NumericalError) as cm:
            kalman_step(state, self.model, np.array([1.0]), period=7)
        self.assertEqual(cm.exception.period, 7)

    def test_wrong_number_of_observables(self):
        with self.assertRaises(ConfigurationError):
            kalman_filter(np.zeros((2, 5)), self.model)


def _random_system(rng, ns=4, ny=3, neps=2):
    a = rng.normal(size=(ns, ns))
    TT = a / (1.5 * np.max(np.abs(np.linalg.eigvals(a))))
    return StateSpaceModel(
        TT=TT,
        RR=rng.normal(size=(ns, neps)),
        CC=rng.normal(size=ns),
        QQ=np.eye(neps),
        ZZ=rng.normal(size=(ny, ns)),
        DD=rng.normal(size=ny),
        HH=0.1 * np.eye(ny),
    )


def test_covariances_are_symmetric():
    rng = np.random.default_rng(0)
    model = _random_system(rng, ns=6, ny=3)
    y = rng.normal(size=(3, 80))
    y[1, ::7] = np.nan

    out = kalman_filter(y, model)

    for t in range(y.shape[1]):
        assert_array_equal(out.vpred[:, :, t], out.vpred[:, :, t].T)
        assert_array_equal(out.vfilt[:, :, t], out.vfilt[:, :, t].T)


def test_missing_row_equals_dropped_observable():
    rng = np.random.default_rng(2)
    model = _random_system(rng, ns=4, ny=3)
    y = rng.normal(size=(3, 40))
    y[2, :] = np.nan

    reduced = StateSpaceModel(TT=model.TT, RR=model.RR, CC=model.CC, QQ=model.QQ,
                              ZZ=model.ZZ[:2], DD=model.DD[:2], HH=model.HH[:2, :2])

    full = kalman_filter(y, model)
    dropped = kalman_filter(y[:2], reduced)

    assert np.all(np.isnan(full.yprederror[2]))
    assert np.all(np.isnan(full.ystdprederror[2]))
    assert_allclose(full.filt, dropped.filt)
    assert_allclose(full.vfilt, dropped.vfilt)
    assert_allclose(full.yprederror[:2], dropped.yprederror)
    assert_allclose(full.marginal_loglh, dropped.marginal_loglh)


def test_likelihood_only_matches_full_output():
    rng = np.random.default_rng(4)
    model = _random_system(rng)
    y = rng.normal(size=(3, 60))
    y[0, 10:15] = np.nan

    full = kalman_filter(y, model)
    for use_numba in (True, False):
        fast = kalman_filter(y, model, allout=False, settings={'use_numba': use_numba})
        assert fast.pred is None
        assert fast.rmse is None
        assert_allclose(fast.marginal_loglh, full.marginal_loglh, rtol=1e-8)
        assert_allclose(fast.zend, full.zend, rtol=1e-8, atol=1e-10)
        assert_allclose(fast.Pend, full.Pend, rtol=1e-8, atol=1e-10)


def test_correlated_measurement_error():
    # With ZZ = 0 the observables are iid with variance HH + MM QQ MM'.
    model = StateSpaceModel(TT=0.9, RR=1.0, CC=0.0, QQ=2.0, ZZ=0.0, DD=0.5, HH=0.3, MM=0.7)
    rng = np.random.default_rng(5)
    y = rng.normal(size=(1, 25))

    out = kalman_filter(y, model)
    byhand = norm.logpdf(y[0], loc=0.5, scale=np.sqrt(0.3 + 0.7**2 * 2.0)).sum()
    assert_allclose(out.log_likelihood, byhand)

    # the filtered state moves with the innovation through Cov(RR eps, eta)
    gain = 1.0 * 2.0 * 0.7 / (0.3 + 0.7**2 * 2.0)
    assert_allclose(out.filt[0], out.pred[0] + gain * (y[0] - 0.5))

    uncorrelated = StateSpaceModel(TT=0.9, RR=1.0, CC=0.0, QQ=2.0, ZZ=0.0, DD=0.5, HH=0.3, MM=0.0)
    plain = kalman_filter(y, uncorrelated)
    assert_allclose(plain.filt, plain.pred)
    assert_allclose(plain.log_likelihood, byhand)
