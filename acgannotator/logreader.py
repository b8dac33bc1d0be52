''' Reading ACG samples from a NEXUS-style log file'''
import logging
import re

from acgannotator.acgbook import ConversionGraph

logger = logging.getLogger(__name__)

TREE_PATTERN = re.compile(r"^\s*tree\s+STATE_\d+\s*=\s*(.*?)\s*$",
                          re.IGNORECASE)


class ACGLogReader(object):
    '''
    The post-burnin ACGs of a log file. Iterating opens the file afresh, so
    the reader can be walked once per annotation pass.
    '''

    def __init__(self, path, burnin_fraction, loci=None):
        '''
        :param burnin_fraction: fraction of the samples (in [0, 1)) to drop
            from the start of the log
        :param loci: list of acgbook.Locus; None to take loci from the
            conversion records
        '''
        if not 0.0 <= burnin_fraction < 1.0:
            raise ValueError("burnin fraction {} outside [0, 1)".format(
                burnin_fraction))
        self.path = path
        self.loci = loci
        self.preamble = ""
        self.postamble = ""
        self.acg_count = 0
        self._scan()
        if self.acg_count == 0:
            raise ValueError("no ACGs found in {}".format(path))
        self.burnin = int(burnin_fraction * self.acg_count)
        logger.info("%s: %d ACGs, discarding %d as burnin", path,
                    self.acg_count, self.burnin)

    def _scan(self):
        preamble = []
        postamble = []
        with open(self.path) as f:
            for line in f:
                if TREE_PATTERN.match(line):
                    self.acg_count += 1
                    postamble = []
                elif self.acg_count == 0:
                    preamble.append(line)
                else:
                    postamble.append(line)
        self.preamble = "".join(preamble)
        self.postamble = "".join(postamble)

    @property
    def corrected_acg_count(self):
        return self.acg_count - self.burnin

    def __len__(self):
        return self.corrected_acg_count

    def __iter__(self):
        seen = 0
        with open(self.path) as f:
            for line in f:
                match = TREE_PATTERN.match(line)
                if match is None:
                    continue
                seen += 1
                if seen <= self.burnin:
                    continue
                yield ConversionGraph.from_string(match.group(1), self.loci)
