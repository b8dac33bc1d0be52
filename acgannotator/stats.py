''' Summary statistics shared by clade and conversion annotation'''
import math

import numpy as np

MEAN = "mean"
MEDIAN = "median"
STRATEGIES = (MEAN, MEDIAN)


def summarize(values, strategy):
    '''
    the point estimate of values under strategy (MEAN or MEDIAN)
    '''
    if not len(values):
        raise ValueError("cannot summarize an empty sample")
    if strategy == MEAN:
        return float(np.mean(values))
    elif strategy == MEDIAN:
        return float(np.median(values))
    raise ValueError("unknown summary strategy {!r}".format(strategy))


def hpd95(values):
    '''
    the 95% interval of values as the elements at positions
    floor(0.025*n) and floor(0.975*n) of the sorted sample
    '''
    ordered = np.sort(np.asarray(values))
    n = len(ordered)
    if n == 0:
        raise ValueError("cannot take an interval of an empty sample")
    return ordered[int(0.025 * n)].item(), ordered[int(0.975 * n)].item()


def round_site(x):
    '''nearest integer, halves rounded up'''
    return int(math.floor(x + 0.5))
