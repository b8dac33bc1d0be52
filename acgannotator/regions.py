''' Partition of a locus into regions of constant conversion content'''
import bisect
import logging

from sortedcontainers import SortedSet

logger = logging.getLogger(__name__)


class Region(object):
    '''
    A half-open interval [start, end) of a locus together with the
    conversions whose intervals contain it
    '''

    def __init__(self, locus, start, end, conversions=None):
        self.locus = locus
        self.start = start
        self.end = end
        self.conversions = list(conversions) if conversions else []

    def __repr__(self):
        return "Region({}, [{}, {}), {} conversions)".format(
            self.locus.name, self.start, self.end, len(self.conversions))

    @property
    def length(self):
        return self.end - self.start

    def contains(self, site):
        return self.start <= site < self.end

    def has_conversions(self):
        return len(self.conversions) > 0


class RegionList(object):
    '''
    Regions of one locus of an ACG: contiguous, non-overlapping, covering
    [0, locus.length) and broken exactly at conversion start and end sites.
    The conversion sets of adjacent regions may coincide.
    '''

    def __init__(self, acg, locus=None):
        self.acg = acg
        if locus is None:
            locus = acg.loci[0]
        self.locus = locus
        self.regions = []
        self.update_region_list()

    def __iter__(self):
        return iter(self.regions)

    def __len__(self):
        return len(self.regions)

    def __getitem__(self, i):
        return self.regions[i]

    def update_region_list(self):
        '''rebuild the regions from the current conversions of the locus'''
        conversions = self.acg.get_conversions(self.locus)
        length = self.locus.length
        if length is None:
            if not conversions:
                raise ValueError("locus {} has no length and no conversions "
                                 "to bound it".format(self.locus.name))
            length = max(conv.end_site for conv in conversions)
        breakpoints = SortedSet([0, length])
        for conv in conversions:
            if conv.start_site < 0 or conv.end_site > length:
                raise ValueError("conversion [{}, {}) outside locus {}".format(
                    conv.start_site, conv.end_site, self.locus))
            breakpoints.add(conv.start_site)
            breakpoints.add(conv.end_site)
        self.regions = []
        for start, end in zip(breakpoints, breakpoints[1:]):
            active = [conv for conv in conversions if conv.contains(start, end)]
            self.regions.append(Region(self.locus, start, end, active))
        self._starts = [region.start for region in self.regions]
        logger.debug("locus %s: %d conversions, %d regions", self.locus.name,
                     len(conversions), len(self.regions))

    def get_regions(self):
        return self.regions

    def region_at(self, site):
        '''the region containing site'''
        if not self.regions or site < 0 or site >= self.regions[-1].end:
            raise IndexError("site {} outside locus {}".format(
                site, self.locus.name))
        return self.regions[bisect.bisect_right(self._starts, site) - 1]
