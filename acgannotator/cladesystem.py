''' Clade and conversion bookkeeping across a sample of ACGs'''
import collections
import math

from acgannotator.acgbook import Conversion
from acgannotator import stats


def clade_label(bits):
    '''taxon indices of a clade joined by "_", e.g. 0b1011 -> "0_1_3"'''
    indices = []
    i = 0
    while bits:
        if bits & 1:
            indices.append(str(i))
        bits >>= 1
        i += 1
    return "_".join(indices)


class CladeRecord(object):
    '''
    Per-clade accumulator: how many samples contained the clade and the
    attribute values collected for it
    '''

    def __init__(self, bits):
        self.bits = bits
        self.count = 0
        self.credibility = 0.0
        self.attributes = collections.defaultdict(list)

    def __repr__(self):
        return "CladeRecord({}, count={}, credibility={})".format(
            clade_label(self.bits), self.count, self.credibility)

    def merge(self, other):
        self.count += other.count
        for name, values in other.attributes.items():
            self.attributes[name].extend(values)


class CladeSystem(object):
    '''
    Clades (leaf sets under internal nodes, and optionally leaves) of the
    clonal frames of many ACGs
    '''

    def __init__(self):
        self.clade_map = {}

    def __len__(self):
        return len(self.clade_map)

    def __contains__(self, bits):
        return bits in self.clade_map

    def __getitem__(self, bits):
        return self.clade_map[bits]

    @staticmethod
    def clade_bits(acg, include_tips=True):
        '''dict node number -> clade bits for the clonal frame of acg'''
        bits = acg.tree.clades()
        if not include_tips:
            bits = dict((k, v) for k, v in bits.items()
                        if not acg.tree[k].is_leaf())
        return bits

    def add(self, acg, include_tips=True):
        '''count every clade of the clonal frame of acg once'''
        for bits in self.clade_bits(acg, include_tips).values():
            record = self.clade_map.get(bits)
            if record is None:
                record = self.clade_map[bits] = CladeRecord(bits)
            record.count += 1

    def register_clades(self, acg, include_tips=True):
        '''
        start an empty record (count 0) for each clade of acg; used to
        restrict attribute collection to the clades of one tree
        '''
        for bits in self.clade_bits(acg, include_tips).values():
            if bits not in self.clade_map:
                self.clade_map[bits] = CladeRecord(bits)

    def calculate_clade_credibilities(self, n_samples):
        if n_samples <= 0:
            raise ValueError("number of samples must be positive")
        for record in self.clade_map.values():
            record.credibility = record.count / n_samples

    def clade_credibility(self, bits):
        record = self.clade_map.get(bits)
        if record is None:
            return 0.0
        return record.credibility

    def log_clade_credibility(self, acg):
        '''
        sum of log credibilities of the internal clades of acg, -inf if any
        of them was never seen
        '''
        total = 0.0
        for bits in self.clade_bits(acg, include_tips=False).values():
            credibility = self.clade_credibility(bits)
            if credibility <= 0.0:
                return -math.inf
            total += math.log(credibility)
        return total

    def collect_attributes(self, acg, attribute_names):
        '''
        append, for every node of acg whose clade is already registered,
        the value of each named node attribute
        '''
        for index, bits in self.clade_bits(acg).items():
            record = self.clade_map.get(bits)
            if record is None:
                continue
            record.count += 1
            node = acg.tree[index]
            for name in attribute_names:
                record.attributes[name].append(getattr(node, name))

    def apply_to_clades(self, acg, visitor):
        '''
        call visitor(node, clade) on every node of acg, children before
        parents; clade is the bit vector of the node, present in the system
        or not
        '''
        bits = self.clade_bits(acg)
        for index in acg.tree.postorder():
            visitor(acg.tree[index], bits[index])

    def merge(self, other):
        '''fold another system (e.g. from a shard of the samples) into self'''
        for bits, record in other.clade_map.items():
            mine = self.clade_map.get(bits)
            if mine is None:
                mine = self.clade_map[bits] = CladeRecord(bits)
            mine.merge(record)


class ConversionSummary(object):
    '''
    All conversions from one clade to another clade on one locus, gathered
    over the samples. Each sample counts at most once towards support.
    '''

    def __init__(self, from_bits, to_bits, locus):
        self.from_bits = from_bits
        self.to_bits = to_bits
        self.locus = locus
        self.height1s = []
        self.height2s = []
        self.start_sites = []
        self.end_sites = []
        self.samples = set()

    def __len__(self):
        return len(self.height1s)

    def add(self, conv, sample):
        self.height1s.append(conv.height1)
        self.height2s.append(conv.height2)
        self.start_sites.append(conv.start_site)
        self.end_sites.append(conv.end_site)
        self.samples.add(sample)

    def merge(self, other, sample_offset=0):
        self.height1s.extend(other.height1s)
        self.height2s.extend(other.height2s)
        self.start_sites.extend(other.start_sites)
        self.end_sites.extend(other.end_sites)
        self.samples.update(s + sample_offset for s in other.samples)

    def support(self, n_acgs):
        '''fraction of the samples containing at least one such conversion'''
        return len(self.samples) / n_acgs

    def to_conversion(self, node1, node2, n_acgs, strategy):
        '''
        the consensus conversion between node1 and node2 of the summary
        tree, annotated with its support and 95% intervals
        '''
        start = stats.round_site(stats.summarize(self.start_sites, strategy))
        end = stats.round_site(stats.summarize(self.end_sites, strategy))
        h1_low, h1_high = stats.hpd95(self.height1s)
        h2_low, h2_high = stats.hpd95(self.height2s)
        s_low, s_high = stats.hpd95(self.start_sites)
        e_low, e_high = stats.hpd95(self.end_sites)
        return Conversion(
            self.locus, node1, stats.summarize(self.height1s, strategy),
            node2, stats.summarize(self.height2s, strategy), start, end,
            meta_bottom="height_95%_HPD={{{},{}}}".format(h1_low, h1_high),
            meta_middle="posterior={}, startSite_95%_HPD={{{},{}}}, "
                        "endSite_95%_HPD={{{},{}}}".format(
                            self.support(n_acgs), s_low, s_high, e_low,
                            e_high),
            meta_top="height_95%_HPD={{{},{}}}".format(h2_low, h2_high))


class ConversionAggregator(object):
    '''
    Groups the conversions of many ACGs by (from clade, to clade, locus)
    and tallies, per sample, the sites moved between clade pairs. Only
    conversions whose both clades are in clade_system are kept.
    '''

    def __init__(self, clade_system):
        self.clade_system = clade_system
        self.summaries = {}
        self.gene_flow_maps = []

    @property
    def sample_count(self):
        return len(self.gene_flow_maps)

    def collect_conversions(self, acg):
        sample = self.sample_count
        flow = collections.defaultdict(int)
        bits = CladeSystem.clade_bits(acg)
        for conv in acg.all_conversions():
            from_bits = bits[conv.node1]
            to_bits = bits[conv.node2]
            if from_bits not in self.clade_system or \
                    to_bits not in self.clade_system:
                continue
            key = (from_bits, to_bits, conv.locus)
            summary = self.summaries.get(key)
            if summary is None:
                summary = self.summaries[key] = ConversionSummary(
                    from_bits, to_bits, conv.locus)
            summary.add(conv, sample)
            flow[(from_bits, to_bits)] += conv.site_count
        self.gene_flow_maps.append(dict(flow))

    def conversion_summary(self, from_bits, to_bits, locus, n_acgs,
                           threshold):
        '''
        the summary for the clade pair if its support reaches threshold,
        otherwise None
        '''
        summary = self.summaries.get((from_bits, to_bits, locus))
        if summary is None or summary.support(n_acgs) < threshold:
            return None
        return summary

    def gene_flow(self, from_bits, to_bits):
        '''sites moved from one clade to the other, one value per sample'''
        return [flow.get((from_bits, to_bits), 0)
                for flow in self.gene_flow_maps]

    def merge(self, other):
        offset = self.sample_count
        for key, summary in other.summaries.items():
            mine = self.summaries.get(key)
            if mine is None:
                mine = self.summaries[key] = ConversionSummary(*key)
            mine.merge(summary, offset)
        self.gene_flow_maps.extend(other.gene_flow_maps)
