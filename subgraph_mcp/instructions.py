SERVER_INSTRUCTIONS = """\
**Interacting with The Graph Subgraphs**

**Always check query volume with `get_deployment_30day_query_counts` for every
candidate subgraph before selecting or querying it.**

1. **Analyze the request.** Identify the protocol (e.g. "Uniswap", "Aave",
   "ENS"), any version or blockchain network the user mentions, and the goal:
   query data or fetch a schema.
2. **Search.** Call `search_subgraphs_by_keyword` with the most generic term
   for the protocol (search "Uniswap" even when the user asked for "Uniswap v3
   on Ethereum"). Use `displayName` in the results to infer version and
   network.
3. **Check query volume.** Collect the `ipfsHash` of every relevant result and
   call `get_deployment_30day_query_counts` with them.
   * Several versions or chains with significant volume: summarise them for
     the user, including each 30-day query count, and ask which one they
     mean.
   * Nothing has meaningful volume and the version/network is still unclear:
     ask the user to specify it.
4. **Select.** Among the candidates matching the clarified criteria, pick the
   one with the highest `total_query_count`. Always state its 30-day query
   volume when presenting it, and mention it when the volume is very low.
5. **Act with the right tool for the identifier you hold.**
   * Query data: subgraph ID (`id` from search) -> `execute_query_by_subgraph_id`;
     deployment ID (0x...) -> `execute_query_by_deployment_id`;
     IPFS hash (`ipfsHash`, Qm...) -> `execute_query_by_ipfs_hash`.
   * Get schema: subgraph ID -> `get_schema_by_subgraph_id`;
     deployment ID -> `get_schema_by_deployment_id`;
     IPFS hash -> `get_schema_by_ipfs_hash`.
   * Keep GraphQL queries minimal: only the fields you need, and omit
     `variables` when unused.

**Contract address lookup.** Only when the user gives a contract address
(0x...) and asks for related subgraphs: determine the chain (ask if unclear;
use 'mainnet' for Ethereum, never 'ethereum'), call
`get_top_subgraph_deployments`, then check the returned deployments with
`get_deployment_30day_query_counts` before querying them.

**Identifier reference.**
* Subgraph ID: alphanumeric, e.g. `5zvR82...`; resolves to the latest deployment.
* Deployment ID: `0x...`, one immutable deployment.
* IPFS hash: `Qm...`, the manifest of one immutable deployment.

If unsure about the data model, fetch the schema first. Use pagination
arguments for large collections and variables for dynamic values.
"""
