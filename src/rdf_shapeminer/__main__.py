import sys

from rdf_shapeminer.cli import main

sys.exit(main())
