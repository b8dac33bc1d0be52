''' Summary ACG of a posterior sample: maximum clade credibility clonal
frame annotated with clade heights and well supported conversions'''
import collections
import logging
import math

import pandas as pd
from tqdm import tqdm

from acgannotator import stats
from acgannotator.cladesystem import (CladeSystem, ConversionAggregator,
                                      clade_label)

logger = logging.getLogger(__name__)

ACCUMULATING = "accumulating"
TOPOLOGY_FIXED = "topology fixed"
ANNOTATING = "annotating"
DONE = "done"

GENE_FLOW_HEADER = ["# Gene flow log file",
                    "# ------------------",
                    "#",
                    "# Each column of this (tab-delimited) file contains the",
                    "# number of nucleotides transfered by conversion between",
                    "# a pair of clonal frame edges.",
                    "#"]


class AnnotatorError(RuntimeError):
    pass


class AnnotatorStateError(AnnotatorError):
    '''an operation was called in the wrong phase'''


class TopologyNotFoundError(AnnotatorError):
    '''no sample qualified as maximum clade credibility topology'''


class ACGAnnotator(object):
    '''
    Two passes over the same stream of ACGs:
    1. accumulate() counts clades, fix_topology() picks the sample with the
        highest product of clade credibilities (the first one on ties)
    2. annotate() collects heights of the chosen clades and the conversions
        between them, then rewrites the chosen ACG into the summary
    The phases only move forward:
    accumulating -> topology fixed -> annotating -> done
    '''

    def __init__(self, n_acgs, threshold, strategy, progress=False):
        '''
        :param n_acgs: number of post-burnin samples, the denominator of
            clade credibility and conversion support
        :param threshold: minimum support (a fraction in [0, 1], inclusive)
            for a conversion to enter the summary
        :param strategy: stats.MEAN or stats.MEDIAN
        '''
        if n_acgs < 0:
            raise ValueError("n_acgs must not be negative")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold {} outside [0, 1]".format(threshold))
        if strategy not in stats.STRATEGIES:
            raise ValueError("unknown summary strategy {!r}".format(strategy))
        self.n_acgs = n_acgs
        self.threshold = threshold
        self.strategy = strategy
        self.progress = progress
        self.state = ACCUMULATING
        self.clade_system = CladeSystem()
        self.aggregator = None
        self.acg_best = None
        self.best_score = -math.inf
        self.accumulated = 0

    def _require(self, state, operation):
        if self.state != state:
            raise AnnotatorStateError("{} needs state '{}', annotator is "
                                      "'{}'".format(operation, state,
                                                    self.state))

    def _iterate(self, acgs, desc):
        if self.progress:
            return tqdm(acgs, ncols=100, ascii=False, desc=desc,
                        total=self.n_acgs or None)
        return acgs

    def accumulate(self, acgs):
        '''first pass: count the clades of every sample'''
        self._require(ACCUMULATING, "accumulate")
        for acg in self._iterate(acgs, "Computing CF clade credibilities"):
            self.clade_system.add(acg, True)
            self.accumulated += 1
        logger.info("accumulated %d ACGs, %d distinct clades",
                    self.accumulated, len(self.clade_system))

    def fix_topology(self, acgs):
        '''
        score every sample against the accumulated clades and keep a copy
        of the best one, with its conversions removed
        '''
        self._require(ACCUMULATING, "fix_topology")
        if self.accumulated == 0 or self.n_acgs == 0:
            raise TopologyNotFoundError("Failed to find best tree topology: "
                                        "no ACGs after burnin.")
        self.clade_system.calculate_clade_credibilities(self.n_acgs)
        best = None
        for acg in self._iterate(acgs, "Identifying MCC CF topology"):
            score = self.clade_system.log_clade_credibility(acg)
            if score > self.best_score:
                self.best_score = score
                best = acg.copy()
        if best is None:
            raise TopologyNotFoundError("Failed to find best tree topology.")
        best.clear_conversions()
        self.acg_best = best
        self.state = TOPOLOGY_FIXED
        logger.info("MCC clonal frame has log clade credibility %s",
                    self.best_score)

    def annotate(self, acgs):
        '''
        second pass: summarize node heights and conversions onto the MCC
        clonal frame
        '''
        self._require(TOPOLOGY_FIXED, "annotate")
        self.state = ANNOTATING
        clade_system = CladeSystem()
        clade_system.register_clades(self.acg_best, True)
        aggregator = ConversionAggregator(clade_system)
        for acg in self._iterate(acgs, "Collecting CF node heights and "
                                       "conversions"):
            clade_system.collect_attributes(acg, ["height"])
            aggregator.collect_conversions(acg)
        clade_system.calculate_clade_credibilities(self.n_acgs)
        self.clade_system = clade_system
        self.aggregator = aggregator
        self.annotate_cf()
        self.summarize_conversions()
        self.state = DONE
        logger.info("summary ACG has %d conversions",
                    self.acg_best.conversion_count)
        return self.acg_best

    def run(self, acgs):
        '''
        all phases; acgs must be re-iterable and yield the same sequence
        every time
        '''
        self.accumulate(acgs)
        self.fix_topology(acgs)
        return self.annotate(acgs)

    def annotate_cf(self):
        '''set summary heights and metadata on the clonal frame nodes'''
        def visit(node, clade):
            record = self.clade_system.clade_map.get(clade)
            if record is None or not record.attributes["height"]:
                raise AnnotatorError("no heights collected for the clade "
                                     "under node {}".format(node.index))
            heights = record.attributes["height"]
            node.height = stats.summarize(heights, self.strategy)
            low, high = stats.hpd95(heights)
            node.meta = "posterior={}, height_95%_HPD={{{},{}}}".format(
                record.credibility, low, high)

        self.clade_system.apply_to_clades(self.acg_best, visit)

    def summarize_conversions(self):
        '''
        add one consensus conversion for each ordered pair of summary nodes
        (a node paired with itself included) and locus whose support
        reaches the threshold
        '''
        tree = self.acg_best.tree
        bits = tree.clades()
        nodes = sorted(tree)
        for from_nr in nodes:
            for to_nr in nodes:
                for locus in self.acg_best.loci:
                    summary = self.aggregator.conversion_summary(
                        bits[from_nr], bits[to_nr], locus, self.n_acgs,
                        self.threshold)
                    if summary is None:
                        continue
                    conv = summary.to_conversion(from_nr, to_nr, self.n_acgs,
                                                 self.strategy)
                    # consensus heights need not fit the summary frame
                    self.acg_best.add_conversion(conv, check=False)

    def gene_flow(self):
        '''
        :return DataFrame, one row per sample and one column per ordered pair
            of distinct summary clades, counting the sites moved by
            conversion from the first clade to the second
        '''
        self._require(DONE, "gene_flow")
        tree = self.acg_best.tree
        bits = tree.clades()
        nodes = sorted(tree)
        flows = collections.OrderedDict()
        for from_nr in nodes:
            for to_nr in nodes:
                if bits[from_nr] == bits[to_nr]:
                    continue
                label = clade_label(bits[from_nr]) + "_to_" + \
                    clade_label(bits[to_nr])
                flows[label] = self.aggregator.gene_flow(bits[from_nr],
                                                           bits[to_nr])
        return pd.DataFrame(flows, columns=list(flows), dtype=int)

    def write_summary_tree(self, handle, preamble="", postamble=""):
        '''the summary ACG as a NEXUS tree block'''
        self._require(DONE, "write_summary_tree")
        handle.write(preamble)
        handle.write("tree STATE_0 = " + self.acg_best.extended_newick()
                     + "\n")
        postamble = postamble.rstrip("\n")
        handle.write((postamble if postamble else "End;") + "\n")

    def write_gene_flow(self, handle):
        self._require(DONE, "write_gene_flow")
        for line in GENE_FLOW_HEADER:
            handle.write(line + "\n")
        self.gene_flow().to_csv(handle, sep="\t", index=False)
