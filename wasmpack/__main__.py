from wasmpack.cli import main

main()
