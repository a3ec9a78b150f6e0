import math

import pytest

from metrosocial.obs import metrics as obs_metrics


@pytest.mark.parametrize(
    "radius,bucket",
    [
        (-math.inf, "0"),
        (-5.0, "0"),
        (10.0, "50"),
        (50.0, "50"),
        (120.5, "200"),
        (5000.0, "5000"),
        (60000.0, "inf"),
        (math.inf, "inf"),
        (math.nan, "invalid"),
    ],
)
def test_radius_bucket(radius, bucket):
    assert obs_metrics.radius_bucket(radius) == bucket


def test_proximity_query_accepts_any_radius():
    for radius in (math.nan, -math.inf, 123456.789):
        obs_metrics.inc_proximity_query(radius, 0)
    labels = {
        sample.labels["radius"]
        for metric in obs_metrics.PROXIMITY_QUERIES.collect()
        for sample in metric.samples
        if sample.name.endswith("_total")
    }
    assert labels <= {str(bound) for bound in obs_metrics.RADIUS_BUCKETS} | {"inf", "invalid"}
