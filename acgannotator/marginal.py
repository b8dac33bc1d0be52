''' Marginal (local) trees of an ACG'''
import logging

from acgannotator.acgbook import Node, Tree

logger = logging.getLogger(__name__)


class MarginalTree(Tree):
    '''
    The tree describing the ancestry of the sites of one region. It is
    obtained from a private copy of the clonal frame by moving, for every
    conversion of the region, the lineage above node1 at height1 so that it
    instead joins the edge above node2 at height2, then pruning the
    lineages left without sampled descendants and suppressing single-child
    nodes. The ACG itself is never modified.
    All points are placed on the frame before any lineage moves and the
    moves touch disjoint inserted nodes, so the result does not depend on
    the order of the conversions (up to points sharing an edge and a
    height).
    '''

    def __init__(self, acg, region):
        Tree.__init__(self)
        self.region = region
        for conv in region.conversions:
            acg.check_conversion(conv)
        self.build(acg.tree.copy(), region.conversions)

    def build(self, frame, conversions):
        leaves = set(node.index for node in frame.leaves())
        original = set(frame.nodes)
        # 1. mark departure and arrival points on the clonal frame edges
        points = []
        for conv in conversions:
            departure = split_edge(frame, conv.node1, conv.height1, original)
            arrival = split_edge(frame, conv.node2, conv.height2, original)
            points.append((departure, arrival))
        # 2. regraft each departing lineage onto its arrival point
        for departure, arrival in points:
            regraft(frame, departure, arrival)
        # 3. prune and suppress
        self.simplify(frame, leaves)
        self.nextname = frame.nextname

    def simplify(self, frame, leaves):
        '''
        copy into self the part of frame ancestral to leaves, dropping
        single-child nodes
        '''
        kept = {}
        for index in frame.postorder():
            node = frame[index]
            if node.is_leaf():
                if index in leaves:
                    self.add(Node(index, node.height, node.label))
                    kept[index] = index
                else:
                    kept[index] = None
                continue
            live = [kept[c] for c in node.children if kept[c] is not None]
            if not live:
                kept[index] = None
            elif len(live) == 1:
                kept[index] = live[0]
            else:
                new = self.add(Node(index, node.height, node.label))
                new.children = live
                for child in live:
                    self.nodes[child].parent = index
                kept[index] = index
        self.root = kept[frame.root]
        assert self.root is not None
        self.nodes[self.root].parent = None


def split_edge(frame, index, height, original):
    '''
    insert a node at height on the clonal frame edge above index. Nodes
    already inserted on that edge (those not in original) keep their order.
    '''
    current = index
    while True:
        parent = frame[current].parent
        if parent is None or parent in original or \
                frame[parent].height > height:
            break
        current = parent
    return frame.insert_above(current, height).index


def regraft(frame, departure, arrival):
    assert frame[departure].height <= frame[arrival].height
    node = frame[departure]
    if node.parent is not None:
        frame[node.parent].children.remove(departure)
    node.parent = arrival
    frame[arrival].children.append(departure)


def marginal_trees(acg, region_list):
    '''one MarginalTree per region, in region order'''
    trees = []
    for region in region_list:
        trees.append(MarginalTree(acg, region))
    logger.debug("built %d marginal trees", len(trees))
    return trees


def trees_equivalent(tree1, tree2, tolerance=0.0):
    '''
    True iff the trees have the same leaf set, the same clades and the
    heights of corresponding nodes differ by at most tolerance. Child order
    and internal node numbers are ignored.
    '''
    heights1 = dict((bits, tree1[index].height)
                    for index, bits in tree1.clades().items())
    heights2 = dict((bits, tree2[index].height)
                    for index, bits in tree2.clades().items())
    if set(heights1) != set(heights2):
        return False
    for bits, height in heights1.items():
        if abs(height - heights2[bits]) > tolerance:
            return False
    return True
