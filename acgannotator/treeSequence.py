''' Clonal frames from msprime/tskit tree sequences, used to build
synthetic ACG samples'''
import msprime
import tskit

from acgannotator.acgbook import ConversionGraph, Locus, Node


class TreeSeq(object):
    '''
    convert the first tree of a tskit tree sequence into the clonal frame of
    an ACG without conversions. Samples become leaves 0..n-1 in sample id
    order; internal nodes are numbered from n in post-order.
    '''

    def __init__(self, ts):
        if not isinstance(ts, tskit.TreeSequence):
            raise TypeError("expected a tskit.TreeSequence, got {}".format(
                type(ts).__name__))
        self.ts = ts
        self.acg = None

    def ts_to_acg(self, locus=None):
        if locus is None:
            locus = Locus(length=int(self.ts.sequence_length))
        tree = self.ts.first()
        if tree.num_roots != 1:
            raise ValueError("tree sequence is not fully coalesced")
        samples = sorted(self.ts.samples())
        numbers = dict((u, i) for i, u in enumerate(samples))
        next_index = len(samples)
        acg = ConversionGraph([locus])
        for u in tree.nodes(order="postorder"):
            if tree.is_leaf(u):
                node = Node(numbers[u], tree.time(u))
            else:
                children = tree.children(u)
                if len(children) != 2:
                    raise ValueError("node {} has {} children".format(
                        u, len(children)))
                numbers[u] = next_index
                next_index += 1
                node = Node(numbers[u], tree.time(u))
                node.children = [numbers[c] for c in children]
                for c in node.children:
                    acg.tree[c].parent = node.index
            acg.tree.add(node)
        acg.tree.root = numbers[tree.root]
        self.acg = acg
        return acg


def simulate_clonal_frames(sample_size, count, random_seed, locus=None):
    '''
    count independent coalescent clonal frames of sample_size haploid
    samples
    '''
    replicates = msprime.sim_ancestry(samples=sample_size, ploidy=1,
                                      population_size=1,
                                      random_seed=random_seed,
                                      num_replicates=count)
    return [TreeSeq(ts).ts_to_acg(locus) for ts in replicates]
