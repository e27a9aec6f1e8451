"""Unit tests for likelihood families"""

import pytest
import numpy as np
from scipy import stats

from robust_lm.algorithms.likelihoods import (
    GaussianLikelihood, StudentTLikelihood, FixedNuStudentTLikelihood, make_likelihood
)
from robust_lm.models import Family


class TestTransforms:
    """Unconstrained <-> natural scale"""

    def test_gaussian_round_trip(self):
        lik = GaussianLikelihood()
        theta = lik.inverse_transform({'intercept': 0.5, 'slope': -1.0, 'sigma': 2.0})
        params = lik.transform(theta)

        assert lik.dim == 3
        assert params['sigma'] == pytest.approx(2.0)
        assert params['slope'] == pytest.approx(-1.0)

    def test_student_nu_lower_bound(self):
        """nu stays above 1 for any unconstrained value"""
        lik = StudentTLikelihood()
        theta = np.array([[0.0, 0.0, 0.0, -50.0], [0.0, 0.0, 0.0, 3.0]])
        params = lik.transform(theta)

        assert lik.dim == 4
        assert np.all(params['nu'] > 1.0)
        assert params['nu'][1] == pytest.approx(1.0 + np.exp(3.0))

    def test_student_jacobian(self):
        lik = StudentTLikelihood()
        theta = np.array([0.0, 0.0, 0.3, 1.2])
        assert lik.log_jacobian(theta) == pytest.approx(1.5)

    def test_fixed_nu_has_three_parameters(self):
        lik = FixedNuStudentTLikelihood(nu=4.0)
        theta = lik.inverse_transform({'intercept': 0.0, 'slope': 1.0, 'sigma': 1.0})

        assert lik.dim == 3
        assert theta.shape == (3,)
        assert 'nu' not in lik.transform(theta)


class TestPointwiseLogLikelihood:
    """Log densities match scipy"""

    @pytest.fixture
    def params(self):
        return {
            'intercept': np.array([0.0, 1.0]),
            'slope': np.array([1.0, 0.5]),
            'sigma': np.array([1.0, 2.0]),
            'nu': np.array([3.0, 10.0])
        }

    def test_gaussian(self, params):
        x = np.array([0.0, 1.0, 2.0])
        y = np.array([0.5, 1.0, 4.0])
        ll = GaussianLikelihood().pointwise_log_likelihood(params, x, y)

        assert ll.shape == (2, 3)
        assert ll[1, 2] == pytest.approx(stats.norm(1.0 + 0.5 * 2.0, 2.0).logpdf(4.0))

    def test_student(self, params):
        x = np.array([0.0, 1.0])
        y = np.array([3.0, -1.0])
        ll = StudentTLikelihood().pointwise_log_likelihood(params, x, y)

        assert ll[0, 0] == pytest.approx(stats.t(3.0, loc=0.0, scale=1.0).logpdf(3.0))
        assert ll[1, 1] == pytest.approx(stats.t(10.0, loc=1.5, scale=2.0).logpdf(-1.0))

    def test_fixed_nu(self, params):
        x = np.array([0.0])
        y = np.array([5.0])
        ll = FixedNuStudentTLikelihood(nu=4.0).pointwise_log_likelihood(params, x, y)
        assert ll[0, 0] == pytest.approx(stats.t(4.0, loc=0.0, scale=1.0).logpdf(5.0))

    def test_student_tails_heavier(self, params):
        """A far point costs less under Student-t than under the normal"""
        x = np.array([0.0])
        y = np.array([8.0])
        gaussian = GaussianLikelihood().pointwise_log_likelihood(params, x, y)
        student = StudentTLikelihood().pointwise_log_likelihood(params, x, y)
        assert student[0, 0] > gaussian[0, 0]

    def test_sample_outcomes_shape(self, params):
        rng = np.random.default_rng(0)
        x = np.linspace(0, 1, 5)
        for lik in (GaussianLikelihood(), StudentTLikelihood(), FixedNuStudentTLikelihood()):
            assert lik.sample_outcomes(params, x, rng).shape == (2, 5)


class TestMakeLikelihood:

    def test_by_name(self):
        assert isinstance(make_likelihood('gaussian'), GaussianLikelihood)
        assert isinstance(make_likelihood('student'), StudentTLikelihood)
        fixed = make_likelihood(Family.STUDENT_FIXED, nu=7)
        assert isinstance(fixed, FixedNuStudentTLikelihood)
        assert fixed.nu == 7.0

    def test_fixed_default_nu(self):
        assert make_likelihood('student_fixed').nu == 4.0

    def test_ols_rejected(self):
        with pytest.raises(ValueError, match="not a Bayesian likelihood"):
            make_likelihood('ols')

    def test_invalid_nu(self):
        with pytest.raises(ValueError):
            FixedNuStudentTLikelihood(nu=0)
