import sys

from qube_mesh.cli import main

sys.exit(main())
