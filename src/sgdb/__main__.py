from sgdb.cli import main

raise SystemExit(main())
