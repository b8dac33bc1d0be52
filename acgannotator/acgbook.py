''' This module is responsible for ACG classes: loci, clonal frame trees,
conversions and the conversion graph itself'''
import collections
import io
import re
import sys
from fractions import Fraction

from Bio import Phylo

sys.setrecursionlimit(40000)

DEFAULT_LOCUS_NAME = "locus"

# one conversion record: [&node1,start,height1,node2,end,height2], optionally
# preceded by the locus id
CONVERSION_PATTERN = re.compile(r"\s*\[&([^\]]*)\]")
ROOT_FLAGS = ("R", "U")


class MalformedACGError(ValueError):
    '''Raised when a conversion graph violates its structural invariants.'''


class Locus(collections.namedtuple("Locus", ["name", "length"])):
    '''
    A contiguous genomic region with its own sequence length. Sites are
    0-based and intervals half-open. length is None when unknown.
    '''
    __slots__ = ()

    def __new__(cls, name=DEFAULT_LOCUS_NAME, length=None):
        return super(Locus, cls).__new__(cls, name, length)

    def __str__(self):
        return "{}:{}".format(self.name, self.length)


class Conversion(collections.namedtuple("Conversion",
                                        ["locus", "node1", "height1",
                                         "node2", "height2",
                                         "start_site", "end_site",
                                         "meta_bottom", "meta_middle",
                                         "meta_top"])):
    """
    A conversion leaves the edge above node1 at height1 and joins the edge
    above node2 at height2, carrying sites [start_site, end_site) of locus.
    node1 and node2 are node numbers of the clonal frame. The three meta
    strings annotate the bottom, middle and top of the conversion edge when
    written as extended Newick and are only set on summary conversions.
    """
    __slots__ = ()

    def __new__(cls, locus, node1, height1, node2, height2, start_site,
                end_site, meta_bottom=None, meta_middle=None, meta_top=None):
        return super(Conversion, cls).__new__(cls, locus, node1, height1,
                                              node2, height2, start_site,
                                              end_site, meta_bottom,
                                              meta_middle, meta_top)

    @property
    def site_count(self):
        return self.end_site - self.start_site

    def contains(self, start, end):
        '''does [start_site, end_site) contain the interval [start, end)'''
        return self.start_site <= start and end <= self.end_site


class Node(object):
    """
    A single node of a tree. Parent and children are node numbers in the
    owning tree, so copying a tree never aliases another tree's nodes.
    Leaves are numbered 0..n-1 and the number is the taxon index.
    """

    def __init__(self, index, height=0.0, label=None):
        self.index = index
        self.height = height
        self.label = label
        self.parent = None
        self.children = []
        self.meta = None

    def __repr__(self):
        return "Node({}, height={}, parent={}, children={})".format(
            self.index, self.height, self.parent, self.children)

    def is_leaf(self):
        return not self.children

    def is_root(self):
        return self.parent is None

    def copy(self):
        node = Node(self.index, self.height, self.label)
        node.parent = self.parent
        node.children = list(self.children)
        node.meta = self.meta
        return node


class Tree(object):
    '''
    A rooted binary tree stored as an arena of nodes keyed by node number.
    '''

    def __init__(self):
        self.nodes = {}
        self.root = None
        self.nextname = 0 # next node index

    def __iter__(self):
        '''iterate over node numbers'''
        return iter(self.nodes)

    def __len__(self):
        return len(self.nodes)

    def __getitem__(self, index):
        return self.nodes[index]

    def __contains__(self, index):
        return index in self.nodes

    def add(self, node):
        '''add a ready node to the tree'''
        self.nodes[node.index] = node
        if node.index >= self.nextname:
            self.nextname = node.index + 1
        return node

    def new_name(self):
        name = self.nextname
        self.nextname += 1
        return name

    def copy(self):
        tree = Tree()
        for node in self.nodes.values():
            tree.add(node.copy())
        tree.root = self.root
        tree.nextname = self.nextname
        return tree

    @property
    def leaf_count(self):
        return len(self.leaves())

    def leaves(self):
        '''leaf nodes ordered by taxon index'''
        return [self.nodes[k] for k in sorted(self.nodes)
                if self.nodes[k].is_leaf()]

    def height(self):
        return self.nodes[self.root].height

    def postorder(self, index=None):
        '''node numbers below (and including) index, children before parents'''
        if index is None:
            index = self.root
        order = []
        stack = [index]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(self.nodes[current].children)
        order.reverse()
        return order

    def clades(self):
        '''
        :return dict node number -> clade bit vector: bit i is set iff
            taxon i descends from the node
        '''
        bits = {}
        for index in self.postorder():
            node = self.nodes[index]
            if node.is_leaf():
                bits[index] = 1 << index
            else:
                value = 0
                for child in node.children:
                    value |= bits[child]
                bits[index] = value
        return bits

    def insert_above(self, index, height):
        '''
        split the edge above node index with a new single-child node at
        height and return it. Above the root the new node becomes the root.
        '''
        node = self.nodes[index]
        new = self.add(Node(self.new_name(), height))
        new.parent = node.parent
        if node.parent is not None:
            parent = self.nodes[node.parent]
            parent.children[parent.children.index(index)] = new.index
        else:
            self.root = new.index
        node.parent = new.index
        new.children = [index]
        return new

    def verify(self):
        '''
        verify the tree:
        1. exactly one root, reachable from every node
        2. child.parent == parent
        3. internal nodes have two children
        4. node.parent.height >= node.height
        '''
        roots = [k for k, node in self.nodes.items() if node.parent is None]
        if roots != [self.root]:
            raise MalformedACGError("tree must have a single root, found {}"
                                    .format(roots))
        if len(self.postorder()) != len(self.nodes):
            raise MalformedACGError("tree has nodes unreachable from root")
        for node in self.nodes.values():
            if node.children and len(node.children) != 2:
                raise MalformedACGError("node {} has {} children".format(
                    node.index, len(node.children)))
            for child in node.children:
                if self.nodes[child].parent != node.index:
                    raise MalformedACGError(
                        "node {} does not point to parent {}".format(
                            child, node.index))
                if self.nodes[child].height > node.height:
                    raise MalformedACGError(
                        "node {} is higher than its parent {}".format(
                            child, node.index))

    def to_newick(self, index=None):
        '''plain Newick with node numbers as labels, no trailing ";" '''
        if index is None:
            index = self.root
        node = self.nodes[index]
        if node.is_leaf():
            s = str(index)
        else:
            s = "(" + ",".join(self.to_newick(child)
                               for child in node.children) + ")" + str(index)
        return s + ":" + repr(self.branch_length(index))

    def branch_length(self, index):
        node = self.nodes[index]
        if node.parent is None:
            return 0.0
        return self.nodes[node.parent].height - node.height


class ConversionGraph(object):
    '''
    Ancestral conversion graph: a clonal frame tree and, per locus, the
    conversions on it.
    '''

    def __init__(self, loci=None):
        self.tree = Tree()
        if not loci:
            loci = [Locus()]
        self.loci = list(loci)
        self.conversions = collections.OrderedDict(
            (locus, []) for locus in self.loci)

    @property
    def root(self):
        return self.tree[self.tree.root]

    @property
    def node_count(self):
        return len(self.tree)

    @property
    def leaf_count(self):
        return self.tree.leaf_count

    def get_node(self, index):
        return self.tree[index]

    def get_locus(self, name):
        for locus in self.loci:
            if locus.name == name:
                return locus
        raise KeyError(name)

    def get_conversions(self, locus=None):
        if locus is None:
            locus = self.loci[0]
        return self.conversions[locus]

    def all_conversions(self):
        '''conversions of every locus, in locus order'''
        ret = []
        for locus in self.loci:
            ret.extend(self.conversions[locus])
        return ret

    @property
    def conversion_count(self):
        return sum(len(convs) for convs in self.conversions.values())

    def add_conversion(self, conv, check=True):
        if conv.locus not in self.conversions:
            raise MalformedACGError("unknown locus {}".format(conv.locus))
        if check:
            self.check_conversion(conv)
        self.conversions[conv.locus].append(conv)
        return conv

    def clear_conversions(self):
        for locus in self.loci:
            self.conversions[locus] = []

    def copy(self):
        acg = ConversionGraph(self.loci)
        acg.tree = self.tree.copy()
        for locus in self.loci:
            acg.conversions[locus] = list(self.conversions[locus])
        return acg

    def _check_edge_height(self, index, height, which):
        if index not in self.tree:
            raise MalformedACGError("conversion {} references node {} "
                                    "absent from the clonal frame".format(
                                        which, index))
        node = self.tree[index]
        if height < node.height:
            raise MalformedACGError(
                "conversion height{} {} is below node {} ({})".format(
                    which, height, index, node.height))
        if node.parent is not None and height > self.tree[node.parent].height:
            raise MalformedACGError(
                "conversion height{} {} is above the parent of node {}".format(
                    which, height, index))

    def check_conversion(self, conv):
        '''raise MalformedACGError unless conv fits on the clonal frame'''
        self._check_edge_height(conv.node1, conv.height1, 1)
        self._check_edge_height(conv.node2, conv.height2, 2)
        if conv.height2 < conv.height1:
            raise MalformedACGError("conversion arrives below its departure "
                                    "({} < {})".format(conv.height2,
                                                       conv.height1))
        if conv.start_site < 0 or conv.start_site >= conv.end_site:
            raise MalformedACGError("bad conversion interval [{}, {})".format(
                conv.start_site, conv.end_site))
        if conv.locus.length is not None and conv.end_site > conv.locus.length:
            raise MalformedACGError(
                "conversion interval [{}, {}) exceeds locus {}".format(
                    conv.start_site, conv.end_site, conv.locus))

    def verify(self):
        self.tree.verify()
        for conv in self.all_conversions():
            self.check_conversion(conv)

    #=======================
    # string forms

    @classmethod
    def from_string(cls, string, loci=None):
        '''
        parse "[&node1,start,height1,node2,end,height2] ... newick". Records
        may start with a locus id. If loci is None, loci are created on the
        fly (with unknown length).
        '''
        declared = loci is not None
        acg = cls(loci)
        records = []
        pos = 0
        while True:
            match = CONVERSION_PATTERN.match(string, pos)
            if match is None:
                break
            pos = match.end()
            fields = [f.strip() for f in match.group(1).split(",")]
            if len(fields) == 1 and fields[0] in ROOT_FLAGS:
                continue
            records.append(fields)
        newick = string[pos:].strip()
        if not newick:
            raise MalformedACGError("no clonal frame in ACG string")
        acg.tree = parse_newick(newick)
        if not declared:
            acg._add_record_loci(records)
        for fields in records:
            acg.add_conversion(acg._record_to_conversion(fields))
        return acg

    def _add_record_loci(self, records):
        names = []
        for fields in records:
            if len(fields) == 7 and fields[0] not in names:
                names.append(fields[0])
        if not names:
            return
        # records without a locus id belong to the default locus, kept first
        if any(len(f) == 6 for f in records):
            if DEFAULT_LOCUS_NAME in names:
                names.remove(DEFAULT_LOCUS_NAME)
            names.insert(0, DEFAULT_LOCUS_NAME)
        self.loci = [Locus(name) for name in names]
        self.conversions = collections.OrderedDict(
            (locus, []) for locus in self.loci)

    def _record_to_conversion(self, fields):
        if len(fields) == 7:
            try:
                locus = self.get_locus(fields[0])
            except KeyError:
                raise MalformedACGError("unknown locus {}".format(fields[0]))
            fields = fields[1:]
        elif len(fields) == 6:
            locus = self.loci[0]
        else:
            raise MalformedACGError("conversion record needs 6 or 7 "
                                    "fields: {}".format(fields))
        try:
            return Conversion(locus, int(fields[0]), float(fields[2]),
                              int(fields[3]), float(fields[5]),
                              int(fields[1]), int(fields[4]))
        except ValueError as exc:
            raise MalformedACGError("bad conversion record {}: {}".format(
                fields, exc)) from exc

    def to_string(self):
        '''inverse of from_string'''
        records = []
        for locus in self.loci:
            for conv in self.conversions[locus]:
                fields = [conv.node1, conv.start_site, repr(conv.height1),
                          conv.node2, conv.end_site, repr(conv.height2)]
                if len(self.loci) > 1 or locus.name != DEFAULT_LOCUS_NAME:
                    fields.insert(0, locus.name)
                records.append("[&" + ",".join(str(f) for f in fields) + "]")
        records.append(self.tree.to_newick() + ";")
        return " ".join(records)

    def __str__(self):
        return self.to_string()

    def extended_newick(self):
        '''
        extended Newick with one hybrid node "#i" per conversion: the hybrid
        node sits at height1 on the edge above node1 and is referenced again
        as a leaf of the node inserted at height2 on the edge above node2.
        '''
        conversions = self.all_conversions()
        events = collections.defaultdict(list)
        for i, conv in enumerate(conversions):
            events[conv.node1].append((conv.height1, 0, i))
            events[conv.node2].append((conv.height2, 1, i))
        return self._extended_newick(self.tree.root, conversions,
                                     events) + ";"

    def _extended_newick(self, index, conversions, events):
        node = self.tree[index]
        if node.is_leaf():
            s = str(index)
        else:
            s = "(" + ",".join(self._extended_newick(child, conversions,
                                                     events)
                               for child in node.children) + ")" + str(index)
        s += _meta(node.meta)
        current = node.height
        for height, arrival, i in sorted(events[index]):
            conv = conversions[i]
            s += ":" + repr(height - current)
            if arrival:
                s = "(" + s + ",#" + str(i) + _meta(conv.meta_middle) + ":" \
                    + repr(conv.height2 - conv.height1) + ")" \
                    + _meta(conv.meta_top)
            else:
                s = "(" + s + ")#" + str(i) + _meta(conv.meta_bottom)
            current = height
        if node.parent is None:
            s += ":0.0"
        else:
            s += ":" + repr(self.tree[node.parent].height - current)
        return s


def _meta(meta):
    if not meta:
        return ""
    return "[&" + meta + "]"


def _clade_label(clade):
    '''Bio.Phylo moves numeric internal labels into clade.confidence'''
    if clade.name is not None:
        return str(clade.name)
    if clade.confidence is not None:
        # float support values never pass isdigit(), so they are not numbers
        return str(clade.confidence)
    return None


def parse_newick(newick):
    '''
    parse a plain Newick string into a Tree. Integer labels are node
    numbers (leaf numbers are taxon indices). Otherwise leaves are numbered
    in order of appearance and internal nodes after them in post-order.
    Heights are measured up from the deepest tip.
    '''
    if not newick.endswith(";"):
        newick += ";"
    try:
        phylo_tree = Phylo.read(io.StringIO(newick), "newick")
    except Exception as exc:
        raise MalformedACGError("cannot parse Newick: {}".format(exc)) from exc
    clades = []
    parents = {}
    depths = {}
    stack = [(phylo_tree.root, None, Fraction(0))]
    while stack:
        clade, parent, depth = stack.pop()
        if clade.branch_length is not None:
            depth += Fraction(clade.branch_length)
        clades.append(clade)
        parents[id(clade)] = parent
        depths[id(clade)] = depth
        for child in reversed(clade.clades):
            stack.append((child, clade, depth))
    # clades is in preorder
    leaves = [c for c in clades if not c.clades]
    internals = [c for c in reversed(clades) if c.clades]
    numbers = _number_nodes(leaves, internals)
    max_depth = max(depths[id(c)] for c in leaves)
    tree = Tree()
    for clade in clades:
        label = _clade_label(clade)
        node = Node(numbers[id(clade)], float(max_depth - depths[id(clade)]))
        if not clade.clades and label is not None and not label.isdigit():
            node.label = label
        if len(clade.clades) not in (0, 2):
            raise MalformedACGError("clonal frame must be binary")
        node.children = [numbers[id(c)] for c in clade.clades]
        parent = parents[id(clade)]
        if parent is not None:
            node.parent = numbers[id(parent)]
        tree.add(node)
    tree.root = numbers[id(phylo_tree.root)]
    if len(tree) != len(clades):
        raise MalformedACGError("duplicate node numbers in Newick")
    # negative branch lengths put a node above its parent
    tree.verify()
    return tree


def _number_nodes(leaves, internals):
    '''
    leaves keep integer labels if they all have them, otherwise they are
    numbered by sorted name; internals keep integer labels likewise
    '''
    numbers = {}
    labels = [_clade_label(c) for c in leaves]
    if all(l is not None and l.isdigit() for l in labels):
        for clade, label in zip(leaves, labels):
            numbers[id(clade)] = int(label)
    else:
        # taxon numbers follow the sorted names, whatever the written order
        ordered = sorted(zip(labels, range(len(leaves))),
                         key=lambda pair: (pair[0] is None, pair[0] or "",
                                           pair[1]))
        for i, (label, position) in enumerate(ordered):
            numbers[id(leaves[position])] = i
    labels = [_clade_label(c) for c in internals]
    if all(l is not None and l.isdigit() for l in labels):
        for clade, label in zip(internals, labels):
            numbers[id(clade)] = int(label)
    else:
        first = max(numbers.values()) + 1
        for i, clade in enumerate(internals):
            numbers[id(clade)] = first + i
    return numbers
