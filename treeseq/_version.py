# Definitive location for the version number.
# During development, should be x.y.z.devN
# For beta should be x.y.zbN
treeseq_version = "0.3.1"
